import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI

from storefront.database import engine
from storefront.infrastructure.db_schema import metadata
from storefront.presentation.admin_api import router as admin_router, ws_router
from storefront.presentation.api import router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Tables ready")

    yield

    await engine.dispose()
    logger.info("Application stopped")


app = FastAPI(
    title="Storefront Service",
    description="Orders, payment intake and the admin console",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Storefront service is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
