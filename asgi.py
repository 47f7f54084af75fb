"""
asgi.py -- Application assembly for ChefFlow.

Builds the app from the environment (core.config.get_settings) once at import
time. Tests do not import this module; they call api.main.create_app() with
their own Settings.

Run with:  uvicorn asgi:app --reload
"""

from api.main import create_app

app = create_app()
