# backend/wsgi.py
from petshop import create_app

app = create_app()
