"""
Image Agent: Generates story cover posters.

Order of attempts:
1. Responses API with the image_generation tool (portrait poster, base64 result)
2. images.generate with DALL-E 3 (square, temporary URL)
3. Pillow placeholder poster, only when no OpenAI key is configured
"""

import base64
import io
import os
import textwrap
from typing import Any, Dict

from PIL import Image, ImageDraw, ImageFont

from config import get_cover_image_config
from schemas import CoverImageResult
from utils.errors import ImageGenerationError
from utils.error_manager import ErrorManager
from utils.logger import get_logger

logger = get_logger("image_agent")

POSTER_STYLE_REQUIREMENTS = """Style requirements:
- Professional movie poster composition with title placement area
- Cinematic lighting and atmosphere
- High-quality digital art with photorealistic elements
- Dramatic visual storytelling that captures the story's essence
- Color palette that reflects the story's mood and genre
- Clear focal point with supporting visual elements
- Commercial appeal suitable for marketing materials"""


class ImageAgent:
    """
    Cover image generation agent.
    """

    def __init__(self, api_key: str = None, config: Dict[str, Any] = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.config = config or get_cover_image_config()
        self._client = None

        if not self.api_key:
            logger.warning("No OPENAI_API_KEY provided. Will use placeholder cover images.")

    @property
    def client(self):
        """Lazy initialization of the OpenAI client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(api_key=self.api_key, timeout=120.0)
        return self._client

    def generate_cover_image(self, prompt: str, story_title: str) -> CoverImageResult:
        """
        Generate a cover poster for a story.

        Args:
            prompt: Cover prompt from the scenarist (or a logline fallback)
            story_title: Title used in the poster instructions

        Returns:
            CoverImageResult (image_url is a data URL or a temporary provider URL)

        Raises:
            ImageGenerationError: every generation method failed
        """
        if not self.api_key:
            return self._generate_placeholder(prompt, story_title)

        try:
            return self._generate_with_responses(prompt, story_title)
        except Exception as e:
            logger.warning(f"Primary cover generation failed: {e}. Falling back to {self.config['fallback_model']}")
            ErrorManager.log_error("ImageAgent", "Primary cover generation failed", str(e), severity="warning")

        try:
            return self._generate_with_images_api(prompt, story_title)
        except Exception as e:
            ErrorManager.log_error("ImageAgent", "Fallback cover generation failed", str(e), severity="critical")
            raise ImageGenerationError(f"All image generation methods failed: {e}") from e

    def _generate_with_responses(self, prompt: str, story_title: str) -> CoverImageResult:
        enhanced_prompt = f'Create a cinematic movie poster for "{story_title}". {prompt}.\n\n{POSTER_STYLE_REQUIREMENTS}'
        logger.info(f"Generating cover with {self.config['primary_model']} ({self.config['size']}, {self.config['quality']})")

        response = self.client.responses.create(
            model=self.config["primary_model"],
            input=[{"role": "user", "content": [{"type": "input_text", "text": enhanced_prompt}]}],
            tools=[{
                "type": "image_generation",
                "size": self.config["size"],
                "quality": self.config["quality"],
                "background": "auto",
            }],
        )

        call = next((item for item in response.output if item.type == "image_generation_call"), None)
        if call is None or call.status != "completed":
            raise ImageGenerationError("Image generation did not complete successfully")
        if not call.result:
            raise ImageGenerationError("No image data returned")

        logger.info("Cover poster generated")
        return CoverImageResult(
            image_url=f"data:image/png;base64,{call.result}",
            prompt=enhanced_prompt,
            base64=call.result,
            revised_prompt=getattr(call, "revised_prompt", None),
            model=self.config["primary_model"],
        )

    def _generate_with_images_api(self, prompt: str, story_title: str) -> CoverImageResult:
        enhanced_prompt = (
            f'Create a cinematic movie poster style cover image for a story titled "{story_title}". {prompt}. '
            "Style: High-quality digital art, cinematic lighting, movie poster composition, professional artwork."
        )
        response = self.client.images.generate(
            model=self.config["fallback_model"],
            prompt=enhanced_prompt,
            size=self.config["fallback_size"],
            quality="standard",
            n=1,
        )
        image_url = response.data[0].url if response.data else None
        if not image_url:
            raise ImageGenerationError(f"No image URL returned from {self.config['fallback_model']}")

        logger.info(f"Fallback cover generated: {image_url[:60]}...")
        return CoverImageResult(
            image_url=image_url,
            prompt=enhanced_prompt,
            revised_prompt=getattr(response.data[0], "revised_prompt", None),
            model=self.config["fallback_model"],
        )

    def _generate_placeholder(self, prompt: str, story_title: str) -> CoverImageResult:
        """Poster-shaped placeholder drawn with Pillow."""
        width, height = (int(v) for v in self.config["size"].split("x"))
        img = Image.new("RGB", (width, height), color=(26, 26, 46))
        draw = ImageDraw.Draw(img)

        try:
            font_title = ImageFont.truetype("arial.ttf", 64)
            font_text = ImageFont.truetype("arial.ttf", 28)
        except IOError:
            font_title = ImageFont.load_default()
            font_text = ImageFont.load_default()

        title = "\n".join(textwrap.wrap(story_title, width=20)[:3])
        draw.multiline_text((60, height // 3), title, font=font_title, fill="white")

        prompt_text = "\n".join(textwrap.wrap(prompt, width=50)[:6])
        draw.multiline_text((60, height * 2 // 3), prompt_text, font=font_text, fill="lightgray")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")

        logger.info(f"Placeholder cover generated for '{story_title}'")
        return CoverImageResult(
            image_url=f"data:image/png;base64,{encoded}",
            prompt=prompt,
            base64=encoded,
            model="placeholder",
        )
