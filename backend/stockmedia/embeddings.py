# backend/stockmedia/embeddings.py
"""
Embedding adapter for the stock catalog.

Turns free text into a vector of exactly EMBEDDING_DIMENSIONS floats through
an external embedding API (OpenAI-compatible or Gemini). Provider failures
never reach the caller: embed() logs them and returns an empty list, which
callers read as "no embedding available".
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from numbers import Real
from collections.abc import Sequence
from typing import Any, Iterable, List, Optional, Union

import numpy as np

from .config import Settings, get_settings


class ProviderUnavailable(RuntimeError):
    """The embedding API failed or answered with something unusable."""


# ---------- raw provider responses ----------

def _as_floats(values: Any) -> tuple[float, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        raise ProviderUnavailable(f"expected a list of numbers, got {type(values).__name__}")
    if not all(isinstance(v, Real) and not isinstance(v, bool) for v in values):
        raise ProviderUnavailable("embedding contains non-numeric components")
    return tuple(float(v) for v in values)


@dataclass(frozen=True)
class FloatArray:
    """Provider answered with a bare list of numbers."""
    values: tuple[float, ...]

    @classmethod
    def from_payload(cls, payload: Any) -> "FloatArray":
        return cls(values=_as_floats(payload))


@dataclass(frozen=True)
class ValuesEnvelope:
    """Provider answered with a list of objects, each carrying a `values` list."""
    entries: tuple[tuple[float, ...], ...]

    @classmethod
    def from_payload(cls, payload: Any) -> "ValuesEnvelope":
        if payload is None or isinstance(payload, (str, bytes)) or not isinstance(payload, Sequence):
            raise ProviderUnavailable("expected a list of embedding objects")
        entries = []
        for item in payload:
            values = item.get("values") if isinstance(item, dict) else getattr(item, "values", None)
            if values is None:
                raise ProviderUnavailable("embedding object has no `values` field")
            entries.append(_as_floats(values))
        return cls(entries=tuple(entries))


RawEmbeddingResponse = Union[FloatArray, ValuesEnvelope]


def decode_raw_embedding(raw: RawEmbeddingResponse) -> List[float]:
    """Flatten a provider response into a single vector."""
    if isinstance(raw, FloatArray):
        vector = list(raw.values)
    elif isinstance(raw, ValuesEnvelope):
        if not raw.entries:
            raise ProviderUnavailable("provider returned no embeddings")
        vector = list(raw.entries[0])
    else:
        raise ProviderUnavailable(f"unrecognized embedding response: {type(raw).__name__}")

    if not vector:
        raise ProviderUnavailable("provider returned an empty embedding")
    return vector


def fit_dimensions(vector: Sequence[float], dimensions: int) -> List[float]:
    """Truncate trailing components or right-pad with zeros to `dimensions`."""
    arr = np.asarray(vector, dtype=np.float64)[:dimensions]
    if arr.size < dimensions:
        arr = np.pad(arr, (0, dimensions - arr.size))
    return arr.tolist()


def build_embedding_text(*parts: Optional[str], tags: Iterable[str] = ()) -> str:
    """Join entry fields and tags with single spaces; missing fields become ''."""
    return " ".join([*(p or "" for p in parts), *tags])


# ---------- providers ----------

class OpenAIEmbeddingProvider:
    """OpenAI / Azure OpenAI embeddings endpoint."""

    def __init__(self, settings: Settings, client=None):
        self.model = settings.embedding_model
        if client is None:
            from openai import OpenAI

            if not settings.openai_api_key:
                raise ValueError("OPENAI_API_KEY not set")
            client = OpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                default_query={"api-version": settings.openai_api_version} if settings.openai_api_version else None,
                default_headers={"api-key": settings.openai_api_key},
                timeout=settings.embedding_timeout_sec,
                max_retries=0,
            )
        self.client = client

    def fetch(self, text: str) -> RawEmbeddingResponse:
        try:
            response = self.client.embeddings.create(input=text, model=self.model)
        except Exception as e:
            raise ProviderUnavailable(f"openai: {e.__class__.__name__}: {e}") from e
        data = getattr(response, "data", None)
        if not data:
            raise ProviderUnavailable("openai: response has no data")
        return FloatArray.from_payload(getattr(data[0], "embedding", None))


class GeminiEmbeddingProvider:
    """Gemini embed_content endpoint via google-genai."""

    def __init__(self, settings: Settings, client=None):
        self.model = settings.embedding_model
        if client is None:
            from google import genai
            from google.genai import types

            if not settings.gemini_api_key:
                raise ValueError("GEMINI_API_KEY not set")
            client = genai.Client(
                api_key=settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(settings.embedding_timeout_sec * 1000)),
            )
        self.client = client

    def fetch(self, text: str) -> RawEmbeddingResponse:
        try:
            response = self.client.models.embed_content(model=self.model, contents=text)
        except Exception as e:
            raise ProviderUnavailable(f"gemini: {e.__class__.__name__}: {e}") from e
        return ValuesEnvelope.from_payload(getattr(response, "embeddings", None))


class MisconfiguredProvider:
    """Stands in when the provider cannot be built; every call reports unavailable."""

    def __init__(self, reason: str):
        self.reason = reason

    def fetch(self, text: str) -> RawEmbeddingResponse:
        raise ProviderUnavailable(self.reason)


PROVIDERS = {
    "openai": OpenAIEmbeddingProvider,
    "gemini": GeminiEmbeddingProvider,
}


# ---------- adapter ----------

class EmbeddingAdapter:
    def __init__(self, provider, dimensions: int):
        self.provider = provider
        self.dimensions = dimensions

    def embed(self, text: str) -> List[float]:
        """
        Embed `text` and normalize it to exactly `self.dimensions` components.

        Returns [] when the provider fails for any reason.
        """
        try:
            raw = self.provider.fetch(text)
            vector = decode_raw_embedding(raw)
        except Exception as e:
            print(f"[embeddings][ERROR] provider unavailable: {e}", flush=True)
            return []

        if len(vector) != self.dimensions:
            print(f"[embeddings] resizing vector {len(vector)} -> {self.dimensions}", flush=True)
            return fit_dimensions(vector, self.dimensions)
        return vector


@lru_cache(maxsize=1)
def get_embedder() -> EmbeddingAdapter:
    """Process-wide adapter built from the environment."""
    settings = get_settings()
    print(f"[embeddings] provider={settings.embedding_provider} model={settings.embedding_model} "
          f"dims={settings.embedding_dimensions}", flush=True)
    try:
        provider = PROVIDERS[settings.embedding_provider](settings)
    except ValueError as e:
        print(f"[embeddings][WARN] {e}; embeddings disabled", flush=True)
        provider = MisconfiguredProvider(str(e))
    return EmbeddingAdapter(provider, settings.embedding_dimensions)
