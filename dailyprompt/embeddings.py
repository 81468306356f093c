"""
Embedding service clients.

Two interchangeable backends produce CLIP-space vectors for images and text:

  HttpEmbeddingService   hosted model exposing
                           POST /api/image-embedding {"image_url": ...}
                           POST /api/text-embedding  {"text": ...}
                         both answering {"embedding": [float, ...]}
  LocalEmbeddingService  sentence-transformers 'clip-ViT-B-32' on the local CPU;
                         the model is downloaded once and cached by HuggingFace.

Both raise EmbeddingUnavailable on transport errors, timeouts, or a
structurally invalid vector. There is never a fallback embedding.
"""
from __future__ import annotations
import asyncio
import io
import logging
import math
from functools import lru_cache
from numbers import Real
from typing import Any, Optional, Protocol

import httpx

from .errors import EmbeddingUnavailable

logger = logging.getLogger(__name__)


class EmbeddingService(Protocol):
    async def embed_image(self, image_url: str) -> list[float]: ...

    async def embed_text(self, text: str) -> list[float]: ...


def coerce_embedding(raw: Any, expected_dim: Optional[int] = None) -> list[float]:
    """
    Validate a raw embedding and return it as a plain list of floats.
    Rejects empty vectors, non-numeric or non-finite elements and, when
    `expected_dim` is set, vectors of the wrong arity.
    """
    if hasattr(raw, "tolist"):
        raw = raw.tolist()
    if not isinstance(raw, (list, tuple)) or len(raw) == 0:
        raise EmbeddingUnavailable("Embedding service returned an empty or non-list vector")
    if expected_dim is not None and len(raw) != expected_dim:
        raise EmbeddingUnavailable(
            f"Embedding service returned {len(raw)} dimensions, expected {expected_dim}"
        )
    vector: list[float] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise EmbeddingUnavailable(f"Embedding contains a non-numeric element: {value!r}")
        vector.append(float(value))
    return vector


class HttpEmbeddingService:
    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        expected_dim: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.expected_dim = expected_dim
        self._timeout = httpx.Timeout(timeout, connect=5.0)
        self._transport = transport

    async def embed_image(self, image_url: str) -> list[float]:
        return await self._post("/api/image-embedding", {"image_url": image_url})

    async def embed_text(self, text: str) -> list[float]:
        return await self._post("/api/text-embedding", {"text": text})

    async def _post(self, path: str, payload: dict) -> list[float]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}{path}", json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as exc:
            logger.error("Embedding request %s timed out: %s", path, exc)
            raise EmbeddingUnavailable() from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Embedding service error on %s: %s %s",
                path, exc.response.status_code, exc.response.text,
            )
            raise EmbeddingUnavailable() from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Embedding request %s failed: %s", path, exc)
            raise EmbeddingUnavailable() from exc

        if not isinstance(data, dict):
            raise EmbeddingUnavailable(f"Invalid embedding response format: {data!r}")
        return coerce_embedding(data.get("embedding"), self.expected_dim)


@lru_cache(maxsize=2)
def _get_model(model_name: str):
    from sentence_transformers import SentenceTransformer
    return SentenceTransformer(model_name)


class LocalEmbeddingService:
    """
    In-process CLIP model. Inference runs on a worker thread so the event
    loop stays responsive; every call is bounded by `timeout`.
    """

    def __init__(
        self,
        model_name: str = "clip-ViT-B-32",
        timeout: float = 30.0,
        expected_dim: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_name = model_name
        self.expected_dim = expected_dim
        self._timeout = timeout
        self._transport = transport

    async def embed_image(self, image_url: str) -> list[float]:
        from PIL import Image

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=5.0), transport=self._transport
            ) as client:
                resp = await client.get(image_url)
                resp.raise_for_status()
            image = Image.open(io.BytesIO(resp.content)).convert("RGB")
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as exc:
            logger.error("Could not fetch image %s for embedding: %s", image_url, exc)
            raise EmbeddingUnavailable() from exc
        return await self._encode(image)

    async def embed_text(self, text: str) -> list[float]:
        return await self._encode(text)

    async def _encode(self, item) -> list[float]:
        def run():
            model = _get_model(self.model_name)
            return model.encode(item, convert_to_numpy=True, normalize_embeddings=True)

        try:
            vector = await asyncio.wait_for(asyncio.to_thread(run), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.error("Local embedding timed out after %.1fs", self._timeout)
            raise EmbeddingUnavailable() from exc
        except Exception as exc:
            logger.exception("Local embedding failed")
            raise EmbeddingUnavailable() from exc
        return coerce_embedding(vector, self.expected_dim)
