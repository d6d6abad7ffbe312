from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .config import get_settings
from .db import get_db
from .embeddings import get_embedder
from .schemas import SortOrder, StockClipCreate, StockClipHit, StockClipOut, StockClipPage
from .services import FallbackWriteFailed, StockClipService
from .store import CLIP_KIND, CatalogFilters, CatalogStore, StoreError

router = APIRouter(prefix="/stock-clips", tags=["stock-clips"])


def get_stock_clip_service(db: Session = Depends(get_db)) -> StockClipService:
    settings = get_settings()
    store = CatalogStore(db, CLIP_KIND, settings.embedding_dimensions)
    return StockClipService(store, get_embedder(), settings)


@router.post("", response_model=StockClipOut)
def create_stock_clip(payload: StockClipCreate, service: StockClipService = Depends(get_stock_clip_service)):
    try:
        return service.create(payload)
    except (FallbackWriteFailed, StoreError) as e:
        raise HTTPException(500, f"Could not create stock clip: {e}")


@router.get("/search", response_model=List[StockClipHit])
def search_stock_clips(
    query: str = Query(..., min_length=1),
    limit: int = Query(default=10, ge=1),
    genre: Optional[str] = None,
    service: StockClipService = Depends(get_stock_clip_service),
):
    """Nearest stock clips to `query` by embedding distance, optionally within a genre."""
    filters = CatalogFilters(match={"genre": genre} if genre else {})
    try:
        results = service.search(query, limit=limit, filters=filters)
    except StoreError as e:
        raise HTTPException(500, f"Stock clip search failed: {e}")

    return [
        StockClipHit(**StockClipOut.model_validate(clip).model_dump(), distance=distance)
        for clip, distance in results
    ]


@router.get("", response_model=StockClipPage)
def fetch_stock_clips(
    search: Optional[str] = None,
    genre: Optional[str] = None,
    tags: List[str] = Query(default=[]),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: str = Query(default="created_at", alias="sortBy"),
    sort_order: SortOrder = Query(default=SortOrder.desc, alias="sortOrder"),
    service: StockClipService = Depends(get_stock_clip_service),
):
    """Filtered, sorted, paginated listing. Unknown sortBy values sort by created_at."""
    filters = CatalogFilters(search=search, match={"genre": genre} if genre else {}, tags=tags)
    try:
        result = service.fetch_all(filters, sort_by=sort_by, sort_order=sort_order.value, page=page, limit=limit)
    except StoreError as e:
        raise HTTPException(500, f"Stock clip listing failed: {e}")

    return StockClipPage(
        items=[StockClipOut.model_validate(c) for c in result["items"]],
        meta=result["meta"],
    )
