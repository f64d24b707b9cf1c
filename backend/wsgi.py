# backend/wsgi.py
from agrostock import create_app

app = create_app()
