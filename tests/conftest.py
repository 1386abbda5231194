import os

os.environ.setdefault("ENVIRONMENT", "test")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture()
def mock_db(monkeypatch):
    """Fresh in-memory database wired into both the app and the helpers."""
    store = mongomock.MongoClient()["funfood_test"]
    database.ensure_indexes(store)
    monkeypatch.setattr(database, "db", store)
    monkeypatch.setattr(main, "db", store)
    return store


@pytest.fixture()
def client(mock_db):
    return TestClient(main.app)


class FakeResponse:
    def __init__(self, payload=None, error=None):
        self._payload = payload
        self._error = error

    def json(self):
        if self._error is not None:
            raise self._error
        return self._payload


@pytest.fixture()
def main_server(monkeypatch):
    """Replace the main server with a canned response.

    Set `main_server.response` (a FakeResponse) or `main_server.error` (an
    exception to raise); requested URLs are collected in `main_server.calls`.
    """

    class Server:
        response = FakeResponse(payload={"success": False})
        error = None
        calls = []

    server = Server()
    server.calls = []

    def fake_get(url, **kwargs):
        server.calls.append(url)
        if server.error is not None:
            raise server.error
        return server.response

    monkeypatch.setattr(main.requests, "get", fake_get)
    return server
