"""
Pytest fixtures for the ledger tests.

Provides a throwaway SQLite ledger per test and an in-memory stand-in for the
Apps Script web app, wired in through httpx.MockTransport.
"""
import json
import threading

import httpx
import pytest

from database import LedgerDatabase
from ledger import LedgerApp
from sheets_sync import SheetsSyncClient

SHEET_URL = "https://script.google.com/macros/s/test-deployment/exec"


class FakeSheet:
    """Records POSTed events and serves `snapshot` on GET."""

    def __init__(self):
        self.pushed = []
        self.requests = []
        self.snapshot = {"customers": [], "transactions": []}
        self.offline = False
        self.status_code = 200
        self.on_get = None
        self._lock = threading.Lock()

    def handler(self, request):
        with self._lock:
            self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("Network is unreachable", request=request)

        if request.method == "POST":
            with self._lock:
                self.pushed.append(json.loads(request.content))
            return httpx.Response(self.status_code, json={"status": "ok"})

        if self.on_get is not None:
            self.on_get()
        return httpx.Response(self.status_code, json=self.snapshot)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "ledger.db")


@pytest.fixture
def db(db_path):
    database = LedgerDatabase(db_path)
    yield database
    database.close()


@pytest.fixture
def sheet():
    return FakeSheet()


@pytest.fixture
def sync_client(sheet):
    client = SheetsSyncClient(SHEET_URL, transport=httpx.MockTransport(sheet.handler))
    yield client
    client.close()


@pytest.fixture
def ledger(db, sheet):
    sync = SheetsSyncClient(SHEET_URL, transport=httpx.MockTransport(sheet.handler))
    app = LedgerApp(db, sync, country_code="+91")
    yield app
    app.close()


@pytest.fixture
def offline_ledger(db):
    app = LedgerApp(db, SheetsSyncClient(""), country_code="+91")
    yield app
    app.close()
