"""
asgi.py -- ASGI entry point for the placement backend.

Kept separate from api/main.py so process managers and the CLI share one
import path for the application object.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
