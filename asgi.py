"""
asgi.py -- ASGI entry point for the auth service.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers have one stable import
path regardless of how the api/ package is organised internally.
"""

from api.main import app

__all__ = ["app"]
