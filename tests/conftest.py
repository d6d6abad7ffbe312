"""
Shared fixtures: a scriptable embedding provider, an in-memory catalog store
with the CatalogStore interface, and settings sized for the default schema.
"""
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import uuid4

import numpy as np
import pytest

from stockmedia.config import Settings
from stockmedia.embeddings import EmbeddingAdapter, FloatArray, ProviderUnavailable
from stockmedia.store import CLIP_KIND, IMAGE_KIND, CatalogFilters, WriteFailed

DIMS = 1536


class FakeProvider:
    """Returns a vector of `length` components, or raises when `fail` is set."""

    def __init__(self, length: int = DIMS, fail: bool = False):
        self.length = length
        self.fail = fail
        self.calls: List[str] = []

    def fetch(self, text: str):
        self.calls.append(text)
        if self.fail:
            raise ProviderUnavailable("provider down")
        return FloatArray(values=tuple(float(i % 7 + 1) for i in range(self.length)))


class FakeCatalogStore:
    def __init__(self, kind=CLIP_KIND, dimensions: int = DIMS,
                 fail_primary: bool = False, fail_fallback: bool = False):
        self.kind = kind
        self.dimensions = dimensions
        self.fail_primary = fail_primary
        self.fail_fallback = fail_fallback
        self.rows = []
        self.calls: List[str] = []
        self.rank_calls = []
        self._clock = datetime(2024, 1, 1)

    def _add(self, attrs, tags, embedding):
        missing = [f for f in self.kind.required if not attrs.get(f)]
        if missing:
            raise WriteFailed(f"missing {missing}")
        self._clock += timedelta(seconds=1)
        row = self.kind.model(id=uuid4().hex, tags=list(tags), embedding=embedding, **attrs)
        row.created_at = row.updated_at = self._clock
        self.rows.append(row)
        return row

    def insert_with_embedding(self, attrs, vector, tags):
        self.calls.append("with_embedding")
        if self.fail_primary:
            raise WriteFailed("vector column rejected the value")
        if len(vector) != self.dimensions:
            raise WriteFailed("dimension mismatch")
        return self._add(attrs, tags, list(vector))

    def insert_without_embedding(self, attrs, tags):
        self.calls.append("without_embedding")
        if self.fail_fallback:
            raise WriteFailed("database unavailable")
        return self._add(attrs, tags, None)

    def _visible(self, filters: CatalogFilters):
        rows = [r for r in self.rows if r.deleted_at is None]
        if self.kind.scope_field:
            rows = [r for r in rows if getattr(r, self.kind.scope_field) == filters.scope_id]
        for key, value in filters.match.items():
            rows = [r for r in rows if getattr(r, key) == value]
        if filters.tags:
            rows = [r for r in rows if set(r.tags) & set(filters.tags)]
        return rows

    def rank_by_similarity(self, query_vector, filters, limit):
        self.rank_calls.append((list(query_vector), filters, limit))
        q = np.asarray(query_vector)
        scored = [
            (r, float(np.linalg.norm(np.asarray(r.embedding) - q)))
            for r in self._visible(filters) if r.embedding is not None
        ]
        scored.sort(key=lambda pair: pair[1])
        return scored[:limit]

    def list_filtered(self, filters, sort_by="created_at", sort_order="desc", page=1, limit=10):
        field = sort_by if sort_by in self.kind.sortable else "created_at"
        rows = sorted(self._visible(filters), key=lambda r: (getattr(r, field), r.id),
                      reverse=sort_order != "asc")
        start = (page - 1) * limit
        return rows[start:start + limit], len(rows)


@pytest.fixture
def settings() -> Settings:
    return Settings(embedding_dimensions=DIMS)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def embedder(provider) -> EmbeddingAdapter:
    return EmbeddingAdapter(provider, DIMS)


@pytest.fixture
def clip_store() -> FakeCatalogStore:
    return FakeCatalogStore(CLIP_KIND)


@pytest.fixture
def image_store() -> FakeCatalogStore:
    return FakeCatalogStore(IMAGE_KIND)


def make_vector(first: float, dims: int = DIMS, second: Optional[float] = None) -> List[float]:
    v = [0.0] * dims
    v[0] = first
    if second is not None:
        v[1] = second
    return v
