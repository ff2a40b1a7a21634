# cardmaker/main.py
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from concurrent.futures import ThreadPoolExecutor
import threading
import logging
import os

from cardmaker.config.settings import settings
from cardmaker.config.database import create_engine, create_session_factory, init_db
from cardmaker.delivery.api.cards import router
from cardmaker.domain.render_service import RenderService
from cardmaker.infrastructure.database.store import SqlCardStore
from cardmaker.infrastructure.imaging.fonts import FontRegistry
from cardmaker.infrastructure.imaging.loader import AssetLoader

logging.getLogger("PIL").setLevel(logging.WARNING)
logger = logging.getLogger("uvicorn.error")

# --- Lazy service bootstrap state ---
_service_lock = threading.Lock()
_service_ready = False


def _ensure_service(app: FastAPI) -> None:
    global _service_ready
    with _service_lock:  # Always acquire lock first
        if _service_ready:
            return
        logger.info("Initializing RenderService and FontRegistry (lazy-init)...")
        loader = AssetLoader()
        fonts = FontRegistry(sources=settings.FONT_SOURCES, fonts_dir=settings.FONTS_DIR, loader=loader)
        app.state.render_service = RenderService(
            fonts=fonts,
            executor=app.state.executor,
            loader=loader,
        )
        _service_ready = True
        logger.info(f"Service initialized with font families: {', '.join(fonts.families()) or 'none'}.")


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _service_ready
    max_workers = min(4, os.cpu_count() or 1)  # Conservative limit
    app.state.executor = ThreadPoolExecutor(max_workers=max_workers)
    engine = create_engine()
    await init_db(engine)
    app.state.card_store = SqlCardStore(create_session_factory(engine))
    logger.info(f"Service '{settings.PROJECT_NAME}' started (mode: {settings.ENVIRONMENT}).")
    logger.info(f"Shared ThreadPoolExecutor created with {max_workers} workers.")
    yield
    logger.info("Shutting down ThreadPoolExecutor...")
    with _service_lock:
        app.state.render_service = None
        _service_ready = False
    app.state.executor.shutdown(wait=True)
    await engine.dispose()
    logger.info("Service stopped.")


app = FastAPI(
    title="Greeting Card Service",
    description="Bilingual greeting card templates: publishing, interactive preview and JPEG export",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Lazy-load only for API routes
@app.middleware("http")
async def lazy_boot(request: Request, call_next):
    if request.url.path.startswith(settings.API_V1_STR):
        _ensure_service(request.app)
    return await call_next(request)


app.include_router(router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    return {"message": "Greeting Card Service", "version": "1.0.0", "status": "ok"}


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "Greeting Card 1.0", "renderer_ready": _service_ready}
