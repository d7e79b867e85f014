"""ASGI entry point: ``uvicorn ridepool.app_factory:app``."""
from ridepool.app import create_app

app = create_app()

__all__ = ["app", "create_app"]
