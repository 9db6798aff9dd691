"""
Simulated generation backend for local development and demos.

Renders a placeholder "marketing image" with Pillow instead of calling a
provider: a canvas of the requested format, tinted per style, with the
prompt written on it. Latency and failure rates are configurable so the
whole retry → dead-letter pipeline can be exercised without a real API.

    SIMULATED_LATENCY=0.5
    SIMULATED_TRANSIENT_FAILURE_RATE=0.3   → ~30% of calls raise TransientError
    SIMULATED_PERMANENT_FAILURE_RATE=1.0   → every call is rejected
"""

import io
import random
import textwrap
import time

from PIL import Image, ImageDraw

from generation.base import AbstractGenerationClient, GeneratedAsset
from models.enums import GenerationStyle, ImageFormat
from models.errors import PermanentError, TransientError

STYLE_COLORS = {
    GenerationStyle.REALISTIC: (79, 70, 229),
    GenerationStyle.ARTISTIC: (219, 39, 119),
    GenerationStyle.CARTOON: (245, 158, 11),
    GenerationStyle.ABSTRACT: (16, 185, 129),
    GenerationStyle.MINIMALIST: (229, 231, 235),
}


class SimulatedGenerationClient(AbstractGenerationClient):

    def __init__(
        self,
        latency: float = 0.0,
        transient_failure_rate: float = 0.0,
        permanent_failure_rate: float = 0.0,
        rng: random.Random | None = None,
    ):
        self._latency = latency
        self._transient_failure_rate = transient_failure_rate
        self._permanent_failure_rate = permanent_failure_rate
        self._rng = rng or random.Random()

    def invoke(self, prompt: str, style: GenerationStyle, format: ImageFormat) -> GeneratedAsset:
        style, format = GenerationStyle(style), ImageFormat(format)

        # Decide failures BEFORE sleeping (no point waiting just to fail)
        if self._rng.random() < self._permanent_failure_rate:
            raise PermanentError(
                "Prompt rejected by content policy (simulated)", provider_code="content_policy"
            )
        if self._rng.random() < self._transient_failure_rate:
            raise TransientError("Provider temporarily unavailable (simulated)")

        if self._latency:
            time.sleep(self._latency)

        return GeneratedAsset(data=self._render(prompt, style, format), content_type="image/png")

    @staticmethod
    def _render(prompt: str, style: GenerationStyle, format: ImageFormat) -> bytes:
        width, height = format.dimensions
        background = STYLE_COLORS[style]
        foreground = (17, 24, 39) if style == GenerationStyle.MINIMALIST else (255, 255, 255)

        img = Image.new("RGB", (width, height), color=background)
        draw = ImageDraw.Draw(img)
        lines = [style.value, *textwrap.wrap(prompt, width=48)[:12]]
        draw.multiline_text((40, 40), "\n".join(lines), fill=foreground, spacing=8)

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    @property
    def backend(self) -> str:
        return "simulated"
