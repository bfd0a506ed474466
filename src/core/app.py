"""
MCP Marketplace - Core Application

This module builds the FastAPI application: it owns the MongoDB connection
manager, wires the marketplace routes and turns domain errors into the
``{success, error}`` envelope.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from .config import Settings, get_cached_settings
from .database import ConnectionManager
from .exceptions import BaseAPIException

# Configure logging
logger = logging.getLogger(__name__)


class MarketplaceApp:
    """Application wrapper holding settings and the connection handle."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connection: Optional[ConnectionManager] = None,
    ):
        """Initialize the base application."""
        self.settings = settings or get_cached_settings()
        self.connection = connection or ConnectionManager(self.settings)
        self.app = None
        self._create_app()

    def _create_app(self):
        """Create the FastAPI application instance."""

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            """Application lifespan manager."""
            # Startup: the database connection is made on first use
            logger.info(f"Starting {self.settings.PROJECT_NAME} API v{self.settings.VERSION}")

            yield

            # Shutdown
            await self.connection.disconnect()
            logger.info("Database connections closed")

        self.app = FastAPI(
            title=self.settings.PROJECT_NAME,
            description="Marketplace for shareable MCP server configurations",
            version=self.settings.VERSION,
            openapi_url=f"{self.settings.API_PREFIX}/openapi.json",
            docs_url=f"{self.settings.API_PREFIX}/docs",
            lifespan=lifespan,
        )
        self.app.state.connection = self.connection

        self._add_middleware()
        self._add_exception_handlers()
        self._add_routes()

    def _add_middleware(self):
        """Add middleware to the application."""
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=list(self.settings.BACKEND_CORS_ORIGINS),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Responses must never be cached by intermediaries
        @self.app.middleware("http")
        async def add_no_cache_headers(request, call_next):
            response = await call_next(request)
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
            return response

    def _add_exception_handlers(self):
        """Render errors raised outside the route bodies as envelopes."""

        @self.app.exception_handler(BaseAPIException)
        async def api_exception_handler(request: Request, exc: BaseAPIException):
            return JSONResponse(
                status_code=exc.status_code,
                content={"success": False, "error": exc.message},
            )

        @self.app.exception_handler(RequestValidationError)
        async def validation_exception_handler(request: Request, exc: RequestValidationError):
            first = exc.errors()[0] if exc.errors() else {}
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = first.get("msg", "Invalid request")
            return JSONResponse(
                status_code=422,
                content={
                    "success": False,
                    "error": f"{location}: {message}" if location else message,
                },
            )

        @self.app.exception_handler(Exception)
        async def unhandled_exception_handler(request: Request, exc: Exception):
            logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
            return JSONResponse(
                status_code=500,
                content={"success": False, "error": "Internal server error"},
            )

    def _add_routes(self):
        """Add routes to the application."""

        @self.app.get("/")
        async def root():
            return {
                "name": self.settings.PROJECT_NAME,
                "version": self.settings.VERSION,
                "docs": f"{self.settings.API_PREFIX}/docs",
            }

        from api.v1 import api_router
        self.app.include_router(api_router, prefix=self.settings.API_PREFIX)

    def get_app(self) -> FastAPI:
        """Get the FastAPI application instance."""
        return self.app


def create_app(
    settings: Optional[Settings] = None,
    connection: Optional[ConnectionManager] = None,
) -> FastAPI:
    """Create and return the FastAPI application."""
    app_instance = MarketplaceApp(settings=settings, connection=connection)
    return app_instance.get_app()
