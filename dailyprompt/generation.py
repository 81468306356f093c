"""
fal.ai image generation client (Flux Dev).

API reference: https://fal.ai/models/fal-ai/flux/dev/api

One synchronous request per prompt; the service either returns an image URL
or fails as a whole. There are no partial results.
"""
from __future__ import annotations
import logging
from typing import Optional, Protocol

import httpx

from .errors import GenerationFailed

logger = logging.getLogger(__name__)


class ImageGenerator(Protocol):
    async def generate(self, prompt: str) -> str: ...


class FalImageGenerator:
    def __init__(
        self,
        api_key: str,
        model_url: str = "https://fal.run/fal-ai/flux/dev",
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model_url = model_url
        self._timeout = httpx.Timeout(timeout, connect=5.0)
        self._transport = transport

    async def generate(self, prompt: str) -> str:
        """Return the URL of a single 1024x1024 image generated for `prompt`."""
        if not self.api_key:
            logger.error("FAL_API_KEY is not configured")
            raise GenerationFailed()

        payload = {
            "prompt": prompt,
            "image_size": "square_hd",
            "num_inference_steps": 28,
            "num_images": 1,
            "enable_safety_checker": True,
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.model_url,
                    json=payload,
                    headers={"Authorization": f"Key {self.api_key}"},
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as exc:
            logger.error("Image generation timed out: %s", exc)
            raise GenerationFailed() from exc
        except httpx.HTTPStatusError as exc:
            logger.error("fal.ai API error: %s %s", exc.response.status_code, exc.response.text)
            raise GenerationFailed() from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Image generation request failed: %s", exc)
            raise GenerationFailed() from exc

        try:
            image_url = data["images"][0]["url"]
        except (KeyError, IndexError, TypeError) as exc:
            logger.error("Unexpected fal.ai response: %r", data)
            raise GenerationFailed() from exc

        nsfw = data.get("has_nsfw_concepts") or []
        if nsfw and nsfw[0]:
            logger.info("Generated image flagged by safety checker")
            raise GenerationFailed("That prompt can't be drawn. Please try a different one.")

        logger.info("Image generated (inference %.2fs)", (data.get("timings") or {}).get("inference", 0.0))
        return image_url
