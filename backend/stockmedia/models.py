from sqlalchemy import CheckConstraint, Column, String, Text, DateTime, func
from sqlalchemy.dialects.postgresql import ARRAY
from pgvector.sqlalchemy import Vector

from .config import get_settings
from .db import Base

EMBEDDING_DIMENSIONS = get_settings().embedding_dimensions


class CatalogColumns:
    """Columns shared by every catalog table."""
    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    url = Column(String, nullable=False)
    tags = Column(ARRAY(String), nullable=False, default=list)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)
    deleted_at = Column(DateTime, nullable=True)  # soft delete marker

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None


class StockClip(CatalogColumns, Base):
    __tablename__ = 'stock_clips'
    __table_args__ = (
        CheckConstraint("name <> ''", name='stock_clips_name_not_empty'),
        CheckConstraint("url <> ''", name='stock_clips_url_not_empty'),
    )
    genre = Column(String, nullable=False)
    duration = Column(String, nullable=False)  # free-form, e.g. "30s"


class StockImage(CatalogColumns, Base):
    __tablename__ = 'stock_images'
    __table_args__ = (
        CheckConstraint("name <> ''", name='stock_images_name_not_empty'),
        CheckConstraint("url <> ''", name='stock_images_url_not_empty'),
    )
    channel_id = Column(String, nullable=False, index=True)
