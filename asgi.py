"""
asgi.py -- Process entry point for the IssueTrack API server.

This is the only place the environment-derived Settings are loaded for the
server. Everything below receives them through create_app().

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app
from core.config import get_settings

app = create_app(get_settings())
