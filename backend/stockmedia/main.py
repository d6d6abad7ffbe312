from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .db import init_db, ensure_vector_indexes
from .transcribe import WhisperTranscriber
from .transcribe.whisper_client import install_hint

from .routes_stock_clips import router as stock_clips_router
from .routes_stock_images import router as stock_images_router
from .routes_transcription import router as transcription_router


app = FastAPI(title="Stock Media Catalog", version="1.0.0")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(get_settings().cors_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Wire routers
app.include_router(stock_clips_router)
app.include_router(stock_images_router)
app.include_router(transcription_router)


# Create tables & indexes on startup
@app.on_event("startup")
def _init_db():
    print("[startup] creating tables and vector indexes...", flush=True)
    init_db()
    ensure_vector_indexes()

    whisper = WhisperTranscriber()
    if whisper.is_ready():
        print(f"[startup] whisper.cpp ready ({whisper.binary}, {whisper.model_name})", flush=True)
    elif not whisper.binary.exists():
        print(f"[startup][WARN] whisper.cpp missing at {whisper.binary}; "
              f"{install_hint(whisper.binary.parent)}", flush=True)
    else:
        print(f"[startup][WARN] whisper model {whisper.model_name} not on disk; "
              f"it downloads on first transcription", flush=True)


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "stock-media"}
