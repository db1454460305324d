"""
asgi.py -- ASGI entry point for QuestRider Auth.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers point at one stable
module path regardless of how the API package is laid out.
"""

from api.main import app

__all__ = ["app"]
