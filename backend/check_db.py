from sqlalchemy import text, inspect

from stockmedia.db import SessionLocal, engine
from stockmedia.models import StockClip, StockImage

print(f"🔗 Connecting to: {engine.url}\n")

db = SessionLocal()

try:
    print("📊 TABLE STRUCTURES:\n")

    inspector = inspect(engine)

    for model in (StockClip, StockImage):
        table = model.__tablename__
        print(f"🗂  {table.upper()} table columns:")
        for col in inspector.get_columns(table):
            nullable = "NULL" if col['nullable'] else "NOT NULL"
            print(f"  - {col['name']:<20} {str(col['type']):<30} {nullable}")
        print()

    for model in (StockClip, StockImage):
        table = model.__tablename__
        live = db.query(model).filter(model.deleted_at.is_(None))
        print("=" * 60)
        print(f"\n📦 {table.upper()}: {db.query(model).count()} total, {live.count()} live")
        print(f"  With embeddings: {live.filter(model.embedding.isnot(None)).count()}")
        print(f"  Soft-deleted: {db.query(model).filter(model.deleted_at.isnot(None)).count()}\n")

        for row in live.order_by(model.created_at.desc()).limit(5):
            has_emb = "✅" if row.embedding is not None else "❌"
            print(f"  ID: {row.id[:16]}...")
            print(f"    Name: {row.name}")
            print(f"    URL: {row.url[:50]}")
            print(f"    Tags: {', '.join(row.tags or [])}")
            print(f"    Has embedding: {has_emb}")
            print(f"    Created: {row.created_at}")
            print()

    print("=" * 60)
    print("\n🔍 PostgreSQL Extensions:")
    result = db.execute(text("SELECT extname, extversion FROM pg_extension"))
    for row in result:
        print(f"  ✅ {row[0]} (v{row[1]})")

except Exception as e:
    import traceback
    print(f"❌ Error: {e}")
    traceback.print_exc()
finally:
    db.close()
