import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

import vaultshare.models  # noqa: F401  registers tables on Base.metadata
from vaultshare.core.config import settings
from vaultshare.core.database import Base, SessionLocal, engine
from vaultshare.core.errors import AccessError
from vaultshare.dependencies import get_signer
from vaultshare.monitoring.setup import setup_monitoring
from vaultshare.routes import links, signed_urls, viewer
from vaultshare.services.signer import HttpSigner
from vaultshare.services.url_cache import url_cache
from vaultshare.tasks.maintenance import start_maintenance_task

logger = logging.getLogger("vaultshare")

@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        async with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                await conn.execute(text("PRAGMA journal_mode=WAL;"))
            logger.info("Creating database tables:")
            for table in Base.metadata.tables.values():
                logger.info(f" - Table: {table.name}")

            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    if settings.SIGNER_BACKEND == "minio":
        try:
            from vaultshare.core.minio_client import check_minio_bucket
            check_minio_bucket()
        except Exception as e:
            logger.error(f"MinIO check failed: {e}")
            raise
    else:
        logger.info("Using remote signer at %s", settings.SIGNER_BASE_URL)

    url_cache.clear()
    maintenance_task = asyncio.create_task(start_maintenance_task())
    logger.info("Background maintenance task started")

    yield

    maintenance_task.cancel()
    try:
        await maintenance_task
    except asyncio.CancelledError:
        logger.info("Maintenance task cancelled")

    signer = get_signer()
    if isinstance(signer, HttpSigner):
        await signer.aclose()
    logger.info("Application shutdown complete")

app = FastAPI(
    title="VaultShare",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(AccessError)
async def access_error_handler(request: Request, exc: AccessError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

app.include_router(links)
app.include_router(signed_urls)
app.include_router(viewer)

setup_monitoring(app)

@app.get("/health")
async def health_check():
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    if settings.SIGNER_BACKEND == "minio":
        try:
            from vaultshare.core.minio_client import minio_client
            minio_client.bucket_exists(settings.MINIO_BUCKET)
            signer_status = "ok"
        except Exception as e:
            signer_status = f"error: {str(e)}"
    else:
        signer_status = "remote"

    return {
        "status": "running",
        "timestamp": datetime.utcnow().isoformat(),
        "database": db_status,
        "signer": signer_status,
        "cached_urls": len(url_cache),
    }

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info",
        timeout_keep_alive=60,
        limit_concurrency=100
    )
