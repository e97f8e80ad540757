"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prompt_library.core.config import settings, validate_provider_settings
from prompt_library.core.database import init_db, close_db
from prompt_library.auth.router import router as auth_router
from prompt_library.prompts.router import router as prompts_router
from prompt_library.optimization.router import router as optimization_router
from prompt_library.analytics.router import router as analytics_router
from prompt_library.admin.router import router as admin_router
from prompt_library.usage.router import router as pricing_router
from prompt_library.usage.pricing import get_price_table


# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting application...")
    validate_provider_settings(settings)
    table = get_price_table()
    logger.info(f"Loaded pricing for {len(table)} models")
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include routers
app.include_router(auth_router)
app.include_router(prompts_router)
app.include_router(optimization_router)
app.include_router(analytics_router)
app.include_router(admin_router)
app.include_router(pricing_router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "providers": {
            "anthropic": bool(settings.anthropic_api_key),
            "openai": bool(settings.openai_api_key),
        },
    }
