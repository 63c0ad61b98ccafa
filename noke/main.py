# noke/main.py
import logging
from contextlib import asynccontextmanager
from typing import Dict

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .settings import settings
from .errors import setup_exception_handlers
from .storage import close_sqlite_db_connection, get_sqlite_db_connection, get_sqlite_document_store
from .plugins.constants import API_KEY_HEADER, PLUGIN_ID_HEADER
from .plugins.endpoints import plugin_auth_router
from .vault.endpoints import plugin_data_router
from .tokens.endpoints import tokens_router
from .accounts.endpoints import accounts_router

# Configure logging based on debug mode setting
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level="DEBUG" if settings.debug_mode else "INFO",
        format='%(asctime)s - %(name)s [%(levelname)s] - %(message)s'
    )

logger = logging.getLogger(__name__)
logger.setLevel(logging.DEBUG if settings.debug_mode else logging.INFO)


@asynccontextmanager
async def noke_app_lifespan(app_instance: FastAPI):
    """Open the document store on startup and release the shared connection on shutdown."""
    logger.info("Application startup initiated.")
    store = await get_sqlite_document_store()
    logger.info(f"Document store ready (SQLite at '{settings.sqlite_db_path}').")
    if not settings.noke_encryption_key:
        logger.critical("NOKE_ENCRYPTION_KEY is not set. Plugin authorization and TOTP will fail.")

    yield

    logger.info("Application shutdown initiated.")
    try:
        await store.teardown()
        await close_sqlite_db_connection()
    except Exception as e:
        logger.error(f"Teardown error: {e}", exc_info=True)
    logger.info("All components torn down.")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug_mode,
    version="0.1.0",
    lifespan=noke_app_lifespan
)

setup_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", API_KEY_HEADER, PLUGIN_ID_HEADER],
)


@app.get("/")
async def root_api():
    return {"message": f"Welcome to {settings.app_name}!"}


@app.get("/health")
async def health_api():
    """Health check endpoint that validates document store connectivity."""
    store_statuses: Dict[str, str] = {}
    all_healthy = True
    try:
        conn = await get_sqlite_db_connection()
        conn.execute("SELECT 1")
        store_statuses["sqlite_document_store"] = "healthy"
    except Exception as e:
        store_statuses["sqlite_document_store"] = "unhealthy"
        logger.error(f"Health check failed: {e}", exc_info=True)
        all_healthy = False

    return {
        "status": "healthy" if all_healthy else "degraded",
        "details": store_statuses
    }


# Mount all routers with appropriate prefixes
app.include_router(plugin_auth_router, prefix="/api/plugin-auth")
app.include_router(plugin_data_router, prefix="/api/plugin")
app.include_router(tokens_router, prefix="/api")
app.include_router(accounts_router, prefix="/api/auth")

logger.info(f"{settings.app_name} initialized. Routers mounted.")
