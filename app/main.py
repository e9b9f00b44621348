import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import create_tables, engine
from app.error_handlers import register_error_handlers
from app.middleware import RequestContextMiddleware
from app.routers import customers, sellers, types

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if settings.CREATE_TABLES:
        await create_tables()
    logger.info("Marketplace API started (%s)", settings.APP_ENV)
    yield
    # Shutdown
    await engine.dispose()


app = FastAPI(
    title="Marketplace API",
    description="CRUD, filtering and search endpoints for customers, sellers and types",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Routers
app.include_router(customers.router)
app.include_router(sellers.router)
app.include_router(types.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
