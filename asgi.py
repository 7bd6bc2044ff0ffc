"""
asgi.py -- ASGI entry point for the sessions service.

api/main.py builds the app and registers every router; this module only
gives servers a stable import path.

Run with:  uvicorn asgi:app --reload
           python main.py serve
"""

from api.main import app

__all__ = ["app"]
