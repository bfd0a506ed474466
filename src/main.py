"""Main FastAPI application entry point."""

from core.app import create_app
from core.config import get_cached_settings
from core.logging_config import configure_logging

settings = get_cached_settings()

# Configure logging
configure_logging(settings)

# Create the application instance
app = create_app(settings)


def main():
    """CLI entry point for running the server."""
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
