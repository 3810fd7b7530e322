"""
AURACLE CLI - operations commands for the scenarist backend.

Commands:
- init-db       create tables
- process       analyze a stored story, or a text file as a new story
- status        per-phase processing status
- resume        resume a story (optionally from a given phase)
- reset         clear all phase results of a story
- retry-stuck   flag the latest story stuck in 'analyzing' for retry
- list          list a user's stories
- cost          per-story cost estimate and volume projection
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from schemas import PHASE_ORDER
from utils.errors import AuracleError

DEFAULT_USER = "cli-user"


def print_progress(step: str, progress: int, message: str, data=None):
    print(f"  [{progress:3d}%] {step}: {message}")


def cmd_init_db(args):
    from db import init_db
    engine = init_db(args.database_url)
    print(f"[OK] Database ready: {engine.url.render_as_string(hide_password=True)}")


def cmd_process(args):
    from db import StoryRepository
    from pipeline import ScenaristPipeline
    from schemas import CreateStoryRequest

    repository = StoryRepository()
    story_id = args.story_id
    if args.file:
        text = Path(args.file).read_text(encoding="utf-8")
        repository.get_or_create_profile(args.user)
        story = repository.create_story(args.user, CreateStoryRequest(
            title=args.title or Path(args.file).stem,
            full_story_text=text,
            visual_style=args.style,
            selected_model=args.model,
        ))
        story_id = story.id
        print(f"[OK] Story created: {story_id}")

    if not story_id:
        print("[ERROR] Either --story-id or --file is required")
        return 1

    pipeline = ScenaristPipeline(repository=repository)
    analysis = pipeline.process_story(story_id, style=args.style, progress_callback=print_progress)
    print(f"\n[OK] '{analysis.story_metadata.title}': {len(analysis.chapters)} chapters, "
          f"{len(analysis.characters)} characters")
    return 0


def cmd_status(args):
    from pipeline import ScenaristPipeline

    status = ScenaristPipeline().get_processing_status(args.story_id)
    print(f"Story {status.story_id}: {status.story_status} (resumed {status.resumed_count}x)")
    for name, phase in status.phases.items():
        line = f"  {name:<20} {phase.status.value}"
        if phase.error:
            line += f"  ! {phase.error}"
        print(line)
    print(f"Can resume: {'yes' if status.can_resume else 'no'}")
    if status.last_error:
        print(f"Last error: {status.last_error}")
    return 0


def cmd_resume(args):
    from pipeline import ScenaristPipeline

    analysis = ScenaristPipeline().resume_processing(
        args.story_id, from_phase=args.from_phase, progress_callback=print_progress
    )
    print(f"\n[OK] Resumed: {len(analysis.chapters)} chapters, {len(analysis.characters)} characters")
    return 0


def cmd_reset(args):
    from pipeline import ScenaristPipeline

    story = ScenaristPipeline().reset_processing(args.story_id)
    print(f"[OK] Story {story.id} reset to '{story.status}'")
    return 0


def cmd_retry_stuck(args):
    from pipeline import ScenaristPipeline

    story = ScenaristPipeline().mark_stuck_for_retry()
    if story is None:
        print("No stories stuck in 'analyzing'")
    else:
        print(f"[OK] '{story.title}' ({story.id}) marked {story.status}")
    return 0


def cmd_list(args):
    from db import StoryRepository

    stories = StoryRepository().list_stories(args.user)
    if not stories:
        print(f"No stories for {args.user}")
    for story in stories:
        print(f"{story.id}  {story.status:<22} {story.title}")
    return 0


def cmd_cost(args):
    from utils.cost import estimate_story_cost, volume_projection

    estimate = estimate_story_cost(include_image=not args.no_image)
    print("Cost breakdown per story analysis:\n")
    for phase in estimate.phases:
        print(f"{phase.phase}:")
        print(f"  Input: {phase.input_tokens} tokens = ${phase.input_cost:.4f}")
        print(f"  Output: {phase.output_tokens} (+{phase.reasoning_tokens} reasoning) tokens = ${phase.output_cost:.4f}")
        print(f"  Phase total: ${phase.total_cost:.4f}")
    if estimate.image_cost:
        print(f"Cover image: ${estimate.image_cost:.4f}")
    print(f"\nTotal per story: ${estimate.estimated_usd:.4f} ({estimate.total_tokens:,} tokens)\n")
    for volume, usd in volume_projection(estimate.estimated_usd).items():
        print(f"{volume} stories: ${usd:.2f}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="auracle", description="AURACLE scenarist backend operations")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create database tables")
    p.add_argument("--database-url", default=None)
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("process", help="Analyze a story")
    p.add_argument("--story-id")
    p.add_argument("--file", help="Text file to store as a new story")
    p.add_argument("--title")
    p.add_argument("--user", default=DEFAULT_USER)
    p.add_argument("--style", help="Visual style id for the cover")
    p.add_argument("--model", help="Model override for every phase")
    p.set_defaults(func=cmd_process)

    p = sub.add_parser("status", help="Show processing status")
    p.add_argument("story_id")
    p.set_defaults(func=cmd_status)

    p = sub.add_parser("resume", help="Resume processing")
    p.add_argument("story_id")
    p.add_argument("--from-phase", choices=[phase.value for phase in PHASE_ORDER])
    p.set_defaults(func=cmd_resume)

    p = sub.add_parser("reset", help="Reset processing state")
    p.add_argument("story_id")
    p.set_defaults(func=cmd_reset)

    p = sub.add_parser("retry-stuck", help="Mark the latest stuck story for retry")
    p.set_defaults(func=cmd_retry_stuck)

    p = sub.add_parser("list", help="List stories")
    p.add_argument("--user", default=DEFAULT_USER)
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("cost", help="Estimate cost per story")
    p.add_argument("--no-image", action="store_true")
    p.set_defaults(func=cmd_cost)

    return parser


def main(argv=None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        return args.func(args) or 0
    except AuracleError as e:
        print(f"[ERROR] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
