"""Run a quick smoke request against the app.

Builds the application on a throwaway in-memory database and calls
`/health` through FastAPI's TestClient.
"""

import sys
import os

# Ensure backend folder is on sys.path so `examhub` package can be imported
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from fastapi.testclient import TestClient
from examhub.config import Settings
from examhub.database import build_engine
from examhub.main import create_app


def run_testclient():
    settings = Settings()
    app = create_app(settings, engine=build_engine('sqlite://'))
    client = TestClient(app)
    resp = client.get('/health')
    print('STATUS:', resp.status_code)
    try:
        print('JSON:', resp.json())
    except ValueError:
        print('CONTENT:', resp.text)


if __name__ == '__main__':
    run_testclient()
