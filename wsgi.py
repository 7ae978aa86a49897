"""WSGI entry point: ``gunicorn wsgi:application``."""

from ga_diagnose.app import create_app

application = create_app()
