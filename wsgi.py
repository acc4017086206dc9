"""
WSGI entry point (gunicorn) and Flask-Migrate target.

Usage:
    gunicorn wsgi:app
    flask --app wsgi db upgrade
"""

from app import create_app

app = create_app()
