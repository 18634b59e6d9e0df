"""FastAPI application."""

from paper_forge.api.app import create_app

__all__ = ["create_app"]
