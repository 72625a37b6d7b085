# backend/wsgi.py
from stockmatrix import create_app

app = create_app()
