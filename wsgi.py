"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi assign-member-numbers --apply
    flask --app wsgi apply-demotions --start 2026-01-01 --end 2026-02-01
    gunicorn wsgi:app
"""

from app import create_app

app = create_app()
