"""
asgi.py -- ASGI entry point for the member registry.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app

__all__ = ["app"]
