from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .config import get_settings

engine = create_engine(get_settings().database_url, echo=False, future=True)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

CATALOG_TABLES = ("stock_clips", "stock_images")


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    """Create the pgvector extension and every catalog table.

    The extension statement uses IF NOT EXISTS, so this is safe on every boot.
    A DB that is not ready yet only logs; table creation is retried on the
    next start.
    """
    from . import models  # noqa: F401  registers tables on Base.metadata

    try:
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        print(f"[db][WARN] init_db failed: {e.__class__.__name__}: {e}", flush=True)


def _get_pgvector_version(conn) -> tuple:
    """Return pgvector extension version as a tuple of ints, e.g., (0, 7, 0).
    Returns (0, 0, 0) if not available.
    """
    try:
        res = conn.execute(text("SELECT extversion FROM pg_extension WHERE extname='vector'"))
        row = res.first()
        if not row or not row[0]:
            return (0, 0, 0)
        parts = str(row[0]).split('.')
        return tuple(int(p) for p in (parts + ['0', '0'])[:3])
    except Exception:
        return (0, 0, 0)


def ensure_vector_indexes():
    """Create an L2 ANN index on each catalog embedding column.

    HNSW when pgvector >= 0.6.0, IVFFlat otherwise. Uses IF NOT EXISTS and
    should be called after the tables exist.
    """
    try:
        with engine.begin() as conn:
            version = _get_pgvector_version(conn)
            for table in CATALOG_TABLES:
                if version >= (0, 6, 0):
                    conn.execute(
                        text(
                            f"""
                            CREATE INDEX IF NOT EXISTS {table}_embedding_hnsw
                            ON {table}
                            USING hnsw (embedding vector_l2_ops)
                            WITH (m = 16, ef_construction = 200)
                            """
                        )
                    )
                else:
                    conn.execute(
                        text(
                            f"""
                            CREATE INDEX IF NOT EXISTS {table}_embedding_ivfflat
                            ON {table}
                            USING ivfflat (embedding vector_l2_ops)
                            WITH (lists = 100)
                            """
                        )
                    )
            print(f"[db] vector indexes ready (pgvector {'.'.join(map(str, version))})", flush=True)
    except Exception as e:
        # Non-fatal; search still works with a sequential scan.
        print(f"[db][WARN] could not create vector indexes: {e}", flush=True)


def get_db() -> Generator:
    """FastAPI dependency that yields a Session and closes it after the request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
