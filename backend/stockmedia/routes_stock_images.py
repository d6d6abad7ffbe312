from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .config import get_settings
from .db import get_db
from .embeddings import get_embedder
from .schemas import SortOrder, StockImageCreate, StockImageHit, StockImageOut, StockImagePage
from .services import FallbackWriteFailed, StockImageService
from .store import IMAGE_KIND, CatalogFilters, CatalogStore, StoreError

router = APIRouter(prefix="/stock-images", tags=["stock-images"])


def get_stock_image_service(db: Session = Depends(get_db)) -> StockImageService:
    settings = get_settings()
    store = CatalogStore(db, IMAGE_KIND, settings.embedding_dimensions)
    return StockImageService(store, get_embedder(), settings)


@router.post("", response_model=StockImageOut)
def create_stock_image(payload: StockImageCreate, service: StockImageService = Depends(get_stock_image_service)):
    try:
        return service.create(payload)
    except (FallbackWriteFailed, StoreError) as e:
        raise HTTPException(500, f"Could not create stock image: {e}")


@router.get("/search", response_model=List[StockImageHit])
def search_stock_images(
    channel_id: str = Query(..., min_length=1),
    query: str = Query(..., min_length=1),
    limit: int = Query(default=10, ge=1),
    service: StockImageService = Depends(get_stock_image_service),
):
    """Nearest images within one channel."""
    try:
        results = service.search(query, limit=limit, filters=CatalogFilters(scope_id=channel_id))
    except StoreError as e:
        raise HTTPException(500, f"Stock image search failed: {e}")

    return [
        StockImageHit(**StockImageOut.model_validate(image).model_dump(), distance=distance)
        for image, distance in results
    ]


@router.get("", response_model=StockImagePage)
def fetch_stock_images(
    channel_id: str = Query(..., min_length=1),
    search: Optional[str] = None,
    tags: List[str] = Query(default=[]),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    sort_by: str = Query(default="created_at", alias="sortBy"),
    sort_order: SortOrder = Query(default=SortOrder.desc, alias="sortOrder"),
    service: StockImageService = Depends(get_stock_image_service),
):
    filters = CatalogFilters(search=search, tags=tags, scope_id=channel_id)
    try:
        result = service.fetch_all(filters, sort_by=sort_by, sort_order=sort_order.value, page=page, limit=limit)
    except StoreError as e:
        raise HTTPException(500, f"Stock image listing failed: {e}")

    return StockImagePage(
        items=[StockImageOut.model_validate(i) for i in result["items"]],
        meta=result["meta"],
    )
