# backend/reset_db.py
from stockmedia.db import engine, Base, init_db
from stockmedia.models import StockClip, StockImage

if __name__ == "__main__":
    print("⚠️  Dropping tables: stock_clips, stock_images (if exist)…")
    Base.metadata.drop_all(bind=engine, tables=[StockClip.__table__, StockImage.__table__])

    print("🧱 Creating tables with current models…")
    init_db()

    print("✅ Done. Tables recreated.")
