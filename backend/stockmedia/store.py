# backend/stockmedia/store.py
"""
Persistence for catalog entries (stock clips, stock images).

One CatalogStore wraps a request-scoped Session and a CatalogKind describing
the table it works on. Every read filters out soft-deleted rows, and kinds
with a scope column (images -> channel_id) refuse to run without a scope.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import StockClip, StockImage


class StoreError(RuntimeError):
    pass


class WriteFailed(StoreError):
    """An insert was rejected; nothing was committed."""


class StoreQueryFailed(StoreError):
    """A ranking or listing query failed."""


@dataclass(frozen=True)
class CatalogKind:
    name: str
    model: type
    sortable: Tuple[str, ...]
    required: Tuple[str, ...]
    exact_fields: Tuple[str, ...] = ()
    scope_field: Optional[str] = None


CLIP_KIND = CatalogKind(
    name="stock_clips",
    model=StockClip,
    sortable=("created_at", "name", "genre", "duration"),
    required=("name", "url", "genre", "duration"),
    exact_fields=("genre",),
)

IMAGE_KIND = CatalogKind(
    name="stock_images",
    model=StockImage,
    sortable=("created_at", "name"),
    required=("channel_id", "name", "url"),
    scope_field="channel_id",
)


@dataclass
class CatalogFilters:
    search: Optional[str] = None
    match: Dict[str, str] = field(default_factory=dict)
    tags: Sequence[str] = ()
    scope_id: Optional[str] = None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CatalogStore:
    def __init__(self, db: Session, kind: CatalogKind, dimensions: int):
        self.db = db
        self.kind = kind
        self.dimensions = dimensions

    # ---------- writes ----------

    def insert_with_embedding(self, attrs: Dict[str, Any], vector: Sequence[float], tags: Sequence[str]):
        if len(vector) != self.dimensions:
            raise WriteFailed(
                f"{self.kind.name}: embedding has {len(vector)} dims, expected {self.dimensions}"
            )
        return self._insert(attrs, tags, embedding=list(vector))

    def insert_without_embedding(self, attrs: Dict[str, Any], tags: Sequence[str]):
        return self._insert(attrs, tags, embedding=None)

    def _insert(self, attrs: Dict[str, Any], tags: Sequence[str], embedding):
        missing = [f for f in self.kind.required if not attrs.get(f)]
        if missing:
            raise WriteFailed(f"{self.kind.name}: missing required fields {missing}")

        row = self.kind.model(id=uuid4().hex, tags=list(tags), embedding=embedding, **attrs)
        self.db.add(row)
        try:
            # server defaults (timestamps) load before commit; nothing is committed if this fails
            self.db.flush()
            self.db.refresh(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise WriteFailed(f"{self.kind.name} insert failed: {e.__class__.__name__}: {e}") from e
        print(f"[store] inserted {self.kind.name} id={row.id} embedding={'yes' if embedding else 'no'}", flush=True)
        return row

    # ---------- reads ----------

    def _conditions(self, filters: CatalogFilters) -> list:
        model = self.kind.model
        conds = [model.deleted_at.is_(None)]

        if self.kind.scope_field:
            if not filters.scope_id:
                raise ValueError(f"{self.kind.name} queries require a {self.kind.scope_field}")
            conds.append(getattr(model, self.kind.scope_field) == filters.scope_id)

        for key, value in filters.match.items():
            if key in self.kind.exact_fields and value:
                conds.append(getattr(model, key) == value)

        if filters.search:
            pattern = f"%{_escape_like(filters.search)}%"
            conds.append(or_(
                model.name.ilike(pattern, escape="\\"),
                model.description.ilike(pattern, escape="\\"),
            ))

        if filters.tags:
            conds.append(model.tags.overlap(list(filters.tags)))

        return conds

    def sort_column(self, sort_by: Optional[str]):
        """Resolve a caller-chosen sort field; anything off the allow-list sorts by created_at."""
        name = sort_by if sort_by in self.kind.sortable else "created_at"
        return getattr(self.kind.model, name)

    def similarity_statement(self, query_vector: Sequence[float], filters: CatalogFilters, limit: int):
        model = self.kind.model
        distance = model.embedding.l2_distance(list(query_vector)).label("distance")
        return (
            select(model, distance)
            .where(*self._conditions(filters), model.embedding.is_not(None))
            .order_by(distance)
            .limit(limit)
        )

    def listing_statements(self, filters: CatalogFilters, sort_by: Optional[str],
                           sort_order: str, page: int, limit: int):
        model = self.kind.model
        conds = self._conditions(filters)
        column = self.sort_column(sort_by)
        if sort_order == "asc":
            order = (column.asc(), model.id.asc())
        else:
            order = (column.desc(), model.id.desc())

        count_stmt = select(func.count()).select_from(model).where(*conds)
        page_stmt = (
            select(model)
            .where(*conds)
            .order_by(*order)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return count_stmt, page_stmt

    def rank_by_similarity(self, query_vector: Sequence[float], filters: CatalogFilters,
                           limit: int) -> List[Tuple[Any, float]]:
        """Closest `limit` rows to `query_vector` by L2 distance, ascending."""
        stmt = self.similarity_statement(query_vector, filters, limit)
        try:
            rows = self.db.execute(stmt).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreQueryFailed(f"{self.kind.name} similarity search failed: {e}") from e
        return [(row[0], float(row[1])) for row in rows]

    def list_filtered(self, filters: CatalogFilters, sort_by: Optional[str] = "created_at",
                      sort_order: str = "desc", page: int = 1, limit: int = 10):
        count_stmt, page_stmt = self.listing_statements(filters, sort_by, sort_order, page, limit)
        try:
            total = self.db.execute(count_stmt).scalar_one()
            items = list(self.db.execute(page_stmt).scalars().all())
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreQueryFailed(f"{self.kind.name} listing failed: {e}") from e
        return items, total
