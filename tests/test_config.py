"""
Configuration, visual style catalogue and CLI tests.
"""
import sys
import os
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config import (
    DEFAULT_DATABASE_URL,
    get_cover_image_config,
    get_dashboard_panels,
    get_database_url,
    get_phase_model_config,
    get_pricing,
    load_pipeline_config,
)
from schemas import get_visual_style
from schemas.visual_styles import get_styles_by_category, resolve_style_prompt


class TestPipelineConfig:

    def test_bundled_config(self, monkeypatch):
        monkeypatch.delenv("AURACLE_CONFIG", raising=False)
        config = load_pipeline_config()
        assert config["phases"]["phase1_storyDNA"]["model"] == "o3"
        assert config["pricing"]["output"] == 8.0

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_pipeline_config(str(tmp_path / "absent.yaml"))
        assert config["reasoning_memory"] == {"min_quality": 8, "recall_limit": 2}
        assert config["cover_image"]["fallback_model"] == "dall-e-3"

    def test_override_merges_with_defaults(self, tmp_path, monkeypatch):
        custom = tmp_path / "pipeline.yaml"
        custom.write_text(
            "phases:\n  phase3_narrative:\n    model: gpt-4.1\n"
            "pricing:\n  input: 3.0\n"
            "cover_image:\n  size: 1024x1024\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("AURACLE_CONFIG", str(custom))

        phase3 = get_phase_model_config("phase3_narrative")
        assert phase3 == {"model": "gpt-4.1", "max_tokens": 6000}
        assert get_phase_model_config("phase1_storyDNA")["model"] == "o3"
        assert get_pricing() == {"input": 3.0, "output": 8.0, "cached": 0.5, "image": 0.187}
        assert get_cover_image_config()["size"] == "1024x1024"
        assert get_cover_image_config()["primary_model"] == "gpt-4o"
        assert get_dashboard_panels()["free"] == ["stories", "portfolio"]

    def test_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        assert get_database_url() == DEFAULT_DATABASE_URL
        monkeypatch.setenv("DATABASE_URL", "postgresql://db/auracle")
        assert get_database_url() == "postgresql://db/auracle"

    @pytest.mark.parametrize("tier,panel", [
        ("pro", "processing_terminal"),
        ("enterprise", "analytics"),
        ("admin", "ai_debug"),
    ])
    def test_tier_panels(self, tier, panel, monkeypatch):
        monkeypatch.delenv("AURACLE_CONFIG", raising=False)
        panels = get_dashboard_panels()
        assert panel in panels[tier]
        assert panel not in panels["free"]


class TestVisualStyles:

    def test_lookup(self):
        assert get_visual_style("golden-hour").category == "cinematic"
        assert get_visual_style("unknown") is None
        assert get_visual_style(None) is None

    def test_by_category(self):
        assert {s.id for s in get_styles_by_category("cartoon")} == {"pixar-3d", "disney-2d"}

    def test_resolve_prompt(self):
        assert resolve_style_prompt("oil-painting").startswith("oil painting")
        assert resolve_style_prompt("charcoal sketch") == "charcoal sketch"
        assert resolve_style_prompt(None) == "Photorealistic"


class TestCli:

    def test_cost_command(self, capsys):
        from cli.auracle_cli import main

        assert main(["cost", "--no-image"]) == 0
        out = capsys.readouterr().out
        assert "phase1_storyDNA:" in out
        assert "1000 stories:" in out
        assert "Cover image" not in out

    def test_unknown_phase_rejected(self):
        from cli.auracle_cli import build_parser

        with pytest.raises(SystemExit):
            build_parser().parse_args(["resume", "story-1", "--from-phase", "phase9"])
