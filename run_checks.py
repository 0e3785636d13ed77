"""
Smoke check against the in-process stores: root, health and database health.

Usage: python run_checks.py
"""

import os

os.environ.setdefault("USE_MOCK_DB", "true")
os.environ.setdefault("AUTH_PROVIDER", "header")
os.environ.setdefault("PUSH_PROVIDER", "none")
os.environ.setdefault("MEDIA_PROVIDER", "memory")

from fastapi.testclient import TestClient

from cera.main import app

client = TestClient(app)

print('ROOT:')
print(client.get('/').json())

print('\nHEALTH:')
print(client.get('/health').json())

print('\nDB HEALTH:')
resp = client.get('/health/db')
print(resp.status_code)
print(resp.json())
