"""
WSGI entry point; also the Flask-Migrate target.

Usage:
    FLASK_APP=wsgi.py flask db upgrade
    gunicorn wsgi:app
"""

from indor_desk import create_app

app = create_app()
