# backend/stockmedia/services.py
"""
Catalog orchestration: embed, then write or rank.

create():    embed -> insert with embedding -> (on failure) one insert without
search():    embed query -> rank by L2 distance (zero vector if embedding failed)
fetch_all(): filtered, sorted, paginated listing with page metadata
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from .config import Settings
from .embeddings import EmbeddingAdapter, build_embedding_text
from .store import CLIP_KIND, IMAGE_KIND, CatalogFilters, CatalogKind, CatalogStore, WriteFailed


class FallbackWriteFailed(RuntimeError):
    """Both the embedding insert and the plain insert failed."""


class CatalogService:
    kind: CatalogKind
    tag = "catalog"

    def __init__(self, store: CatalogStore, embedder: EmbeddingAdapter, settings: Settings):
        if store.kind is not self.kind:
            raise ValueError(f"{type(self).__name__} needs a {self.kind.name} store, got {store.kind.name}")
        self.store = store
        self.embedder = embedder
        self.settings = settings

    # subclasses describe their entity
    def embedding_text(self, payload) -> str:
        raise NotImplementedError

    def record_attrs(self, payload) -> Dict[str, Any]:
        raise NotImplementedError

    def _log(self, msg: str):
        print(f"[{self.tag}] {msg}", flush=True)

    def create(self, payload):
        attrs = self.record_attrs(payload)
        tags = list(payload.tags)
        self._log(f"creating name={attrs.get('name')!r} tags={tags}")

        embedding = self.embedder.embed(self.embedding_text(payload))
        if not embedding:
            self._log("no embedding available, storing without one")
            return self.store.insert_without_embedding(attrs, tags)

        try:
            return self.store.insert_with_embedding(attrs, embedding, tags)
        except WriteFailed as primary:
            self._log(f"[ERROR] insert with embedding failed: {primary}")

        self._log("attempting fallback insert without embedding")
        try:
            return self.store.insert_without_embedding(attrs, tags)
        except WriteFailed as fallback:
            self._log(f"[ERROR] fallback insert failed: {fallback}")
            raise FallbackWriteFailed(str(fallback)) from fallback

    def search(self, query: str, limit: Optional[int] = None,
               filters: Optional[CatalogFilters] = None) -> List[Tuple[Any, float]]:
        limit = limit or self.settings.search_default_limit
        filters = filters or CatalogFilters()

        vector = self.embedder.embed(query)
        if not vector:
            self._log("query embedding unavailable, ranking against zero vector")
            vector = [0.0] * self.settings.embedding_dimensions

        results = self.store.rank_by_similarity(vector, filters, limit)
        self._log(f"search {query!r} -> {len(results)} hits")
        return results

    def fetch_all(self, filters: CatalogFilters, sort_by: Optional[str] = "created_at",
                  sort_order: str = "desc", page: int = 1, limit: int = 10) -> Dict[str, Any]:
        items, total = self.store.list_filtered(filters, sort_by, sort_order, page, limit)
        return {
            "items": items,
            "meta": {
                "totalCount": total,
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(total / limit),
            },
        }


class StockClipService(CatalogService):
    kind = CLIP_KIND
    tag = "stock-clips"

    def embedding_text(self, payload) -> str:
        return build_embedding_text(payload.name, payload.description, payload.genre, tags=payload.tags)

    def record_attrs(self, payload) -> Dict[str, Any]:
        return {
            "name": payload.name,
            "description": payload.description,
            "url": payload.url,
            "genre": payload.genre,
            "duration": payload.duration,
        }


class StockImageService(CatalogService):
    kind = IMAGE_KIND
    tag = "stock-images"

    def embedding_text(self, payload) -> str:
        return build_embedding_text(payload.name, payload.description, tags=payload.tags)

    def record_attrs(self, payload) -> Dict[str, Any]:
        return {
            "channel_id": payload.channel_id,
            "name": payload.name,
            "description": payload.description,
            "url": payload.url,
        }
