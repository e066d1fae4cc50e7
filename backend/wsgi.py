# backend/wsgi.py
from temple import create_app

app = create_app()
