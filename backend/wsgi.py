# Overview: WSGI entrypoint (FLASK_APP=wsgi.py, or gunicorn wsgi:app).

from kasir import create_app

app = create_app()
