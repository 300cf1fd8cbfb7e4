# filevault/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, load_settings
from .crypto import EncryptedBlobCodec
from .db import FileStore, make_pool
from .files import FileService
from .logging_config import setup_logging
from .routes import router
from .storage import LocalBlobStorage

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, files: Optional[FileService] = None) -> FastAPI:
    """Build the app. Configuration errors surface here, before any request is served."""
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    pool = None
    if files is None:
        pool = make_pool(settings)
        files = FileService(
            store=FileStore(pool),
            blobs=LocalBlobStorage(settings.storage_dir),
            codec=EncryptedBlobCodec(settings.encryption_key),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting filevault with %s", settings.public_view())
        if pool is not None:
            pool.open(wait=True)
            FileStore(pool).init_schema()
        try:
            yield
        finally:
            if pool is not None:
                pool.close()

    app = FastAPI(title="filevault", lifespan=lifespan)
    app.state.settings = settings
    app.state.files = files
    app.state.pool = pool

    # ---------- CORS ----------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),   # explicit origins (no "*")
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Content-Disposition"],
    )

    # ---------- Health ----------
    @app.get("/health")
    def health():
        if app.state.pool is None:
            return {"status": "ok"}
        # Simple DB round-trip to prove connectivity and time source
        with app.state.pool.connection() as conn, conn.cursor() as cur:
            cur.execute("select now()")
            return {"status": "ok", "db_time_utc": cur.fetchone()[0].isoformat()}

    @app.get("/healthz")
    def healthz():
        # Alias commonly used by probes
        return health()

    app.include_router(router)
    return app


app = create_app()
