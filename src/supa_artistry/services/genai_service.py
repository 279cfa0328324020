"""GenAI demo service — simulated text, image, multimodal and video features.

Learn: None of these call a model. Each demo validates its input, waits
a fixed delay to feel like a real generation, and returns a templated
answer. What is real is the session tagging: every result carries the
active identifier (user id or guest token) from the session resolver,
exactly what a real backend would be sent.

Delays (configurable via SUPA_ARTISTRY_*_DELAY_SECONDS):
  text 2s, image 3s, multimodal 3s, video 5s
"""

import asyncio
import mimetypes
import time
from pathlib import Path
from typing import Optional

import structlog

from supa_artistry.config import settings
from supa_artistry.schemas.genai import DemoResult, Notice
from supa_artistry.session.resolver import SessionResolver

logger = structlog.get_logger()


class DemoInputError(Exception):
    """Raised when a demo is called with missing or bad input."""

    def __init__(self, title: str, description: str):
        super().__init__(f"{title}: {description}")
        self.notice = Notice(title=title, description=description, variant="destructive")


class SessionRequired(DemoInputError):
    """Raised when there's no signed-in user and no guest."""

    def __init__(self):
        super().__init__(
            "No active session", "Sign in or continue as guest to try the demos"
        )


_TEXT_TEMPLATE = (
    'Generated response for: "{prompt}"\n\n'
    "This is a simulated response. To use real Google AI, connect a Gemini "
    "API client in place of this demo."
)

_IMAGE_TEMPLATE = (
    'Image Analysis for "{name}":\n\n'
    "• Image dimensions: Detected automatically\n"
    "• Content: This appears to be a {kind} image\n"
    "• File size: {size_kb:.1f} KB\n\n"
    "This is a simulated analysis. To use real Google AI vision capabilities, "
    "implement the actual Google GenAI vision API calls."
)

_MULTIMODAL_TEMPLATE = (
    "Multimodal Analysis:\n\n"
    'Prompt: "{prompt}"\n'
    "Image: {name}\n\n"
    "Based on the image and your prompt, here's what I can tell you:\n\n"
    "This is a simulated response that would combine the visual understanding "
    "of your uploaded image with the text prompt you provided. In a real "
    "implementation with Google's Gemini AI, this would provide sophisticated "
    "analysis combining both visual and textual understanding.\n\n"
    "The AI would be able to:\n"
    "• Describe what's in the image\n"
    "• Answer questions about the image\n"
    "• Generate content based on both the image and text prompt\n"
    "• Create creative responses combining visual and textual context"
)


class GenAIDemoService:
    """Runs the simulated demos on behalf of the current session."""

    def __init__(
        self,
        resolver: SessionResolver,
        api_key: Optional[str] = None,
        vertexai: bool = False,
        delay_scale: float = 1.0,
    ):
        self.resolver = resolver
        self.api_key = settings.google_api_key if api_key is None else api_key
        self.vertexai = vertexai
        self.delay_scale = delay_scale

    # ─── Demos ────────────────────────────────────────────

    async def generate_text(self, prompt: str) -> DemoResult:
        session_id = self._session_id()
        prompt = _require_prompt(prompt, "Please enter a prompt to generate content")

        started = time.monotonic()
        await self._simulate(settings.text_delay_seconds)
        return self._result(
            "text",
            session_id,
            started,
            content=_TEXT_TEMPLATE.format(prompt=prompt),
            notice=Notice(
                title="Content Generated",
                description="Your AI content has been generated successfully!",
            ),
        )

    async def analyze_image(self, path: Optional[str]) -> DemoResult:
        session_id = self._session_id()
        image, mime = _require_image(path, "No Image Selected")

        started = time.monotonic()
        await self._simulate(settings.image_delay_seconds)
        return self._result(
            "image",
            session_id,
            started,
            content=_IMAGE_TEMPLATE.format(
                name=image.name,
                kind="JPEG" if "jpeg" in mime else "PNG",
                size_kb=image.stat().st_size / 1024,
            ),
            notice=Notice(
                title="Analysis Complete",
                description="Image has been analyzed successfully!",
            ),
        )

    async def text_and_image(self, prompt: str, path: Optional[str]) -> DemoResult:
        session_id = self._session_id()
        prompt = _require_prompt(prompt, "Please enter a prompt")
        image, _ = _require_image(path, "Image Required")

        started = time.monotonic()
        await self._simulate(settings.multimodal_delay_seconds)
        return self._result(
            "multimodal",
            session_id,
            started,
            content=_MULTIMODAL_TEMPLATE.format(prompt=prompt, name=image.name),
            notice=Notice(
                title="Content Generated",
                description="Multimodal content generated successfully!",
            ),
        )

    async def generate_video(self, prompt: str) -> DemoResult:
        session_id = self._session_id()
        prompt = _require_prompt(prompt, "Please enter a video prompt")

        started = time.monotonic()
        await self._simulate(settings.video_delay_seconds)
        # No real backend, so there is never a video URL.
        return self._result(
            "video",
            session_id,
            started,
            notice=Notice(
                title="Video Generation Simulated",
                description=(
                    "This is a demo - real video generation requires Veo API "
                    "access and significant processing time"
                ),
            ),
        )

    # ─── Internals ────────────────────────────────────────

    def _session_id(self) -> str:
        """Active identifier for tagging, after the API-key check."""
        session_id = self.resolver.get_active_identifier()
        if not session_id:
            raise SessionRequired()
        if not self.api_key:
            raise DemoInputError(
                "API Key Required", "Please enter your Google AI API key first"
            )
        return session_id

    async def _simulate(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds * self.delay_scale, 0))

    def _result(
        self,
        feature: str,
        session_id: str,
        started: float,
        notice: Notice,
        content: str = "",
    ) -> DemoResult:
        logger.info(
            "genai.demo_completed",
            feature=feature,
            session_id=session_id,
            vertexai=self.vertexai,
            elapsed_ms=int((time.monotonic() - started) * 1000),
        )
        return DemoResult(
            feature=feature,
            session_id=session_id,
            content=content,
            vertexai=self.vertexai,
            notice=notice,
        )


def _require_prompt(prompt: Optional[str], description: str) -> str:
    prompt = (prompt or "").strip()
    if not prompt:
        raise DemoInputError("Prompt Required", description)
    return prompt


def _require_image(path: Optional[str], missing_title: str) -> tuple[Path, str]:
    if not path:
        raise DemoInputError(missing_title, "Please select an image to analyze")
    image = Path(path).expanduser()
    if not image.is_file():
        raise DemoInputError(missing_title, f"Image not found: {path}")
    mime, _ = mimetypes.guess_type(image.name)
    if not mime or not mime.startswith("image/"):
        raise DemoInputError("Invalid File Type", "Please select an image file")
    return image, mime
