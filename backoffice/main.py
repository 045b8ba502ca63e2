from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from backoffice.core.cache import init_cache, close_cache
from backoffice.core.config import get_settings
from backoffice.core.exceptions import AppError
from backoffice.core.logging import setup_logging
from backoffice.routers.health import router as health_router
from backoffice.routers.recipes import router as recipes_router
from backoffice.routers.meals import router as meals_router
from backoffice.routers.menus import router as menus_router

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if getattr(app.state, "cache", None) is None:
        app.state.cache = init_cache(settings)
    logger.info(f"{settings.APP_NAME} started")
    yield
    close_cache(app.state.cache)
    app.state.cache = None


app = FastAPI(
    title=settings.APP_NAME,
    description="Restaurant back-office API - recipe costing, meal composition and menu assembly.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Map typed component failures to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(recipes_router, prefix="/api")
app.include_router(meals_router, prefix="/api")
app.include_router(menus_router, prefix="/api")


@app.get("/")
def read_root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "docs": "/docs",
        "health": "/health"
    }
