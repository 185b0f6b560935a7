"""Shared fixtures for storage client tests."""

import io
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from gtm_storage import StorageClient


BASE_URL = "http://storage.test:3000"
API_KEY = "test-api-key"


class FakeRaw(io.BytesIO):
    """In-memory response body that records connection release."""

    released = False

    def release_conn(self):
        self.released = True


class StallingRaw(FakeRaw):
    """Body that hands out its first chunk, then blocks until it is closed.

    A read blocked on a connection that another thread closes fails with
    whatever the torn-down pool hits; mimic that with an AttributeError.
    """

    def __init__(self, head=b"partial"):
        super().__init__(head)
        self.started = threading.Event()
        self._unblocked = threading.Event()

    def read(self, size=-1):
        if not self.started.is_set():
            chunk = super().read(size)
            self.started.set()
            return chunk
        self._unblocked.wait(5)
        raise AttributeError("'NoneType' object has no attribute 'read'")

    def close(self):
        self._unblocked.set()
        super().close()


def build_response(status_code=200, body=b"", headers=None):
    """Real requests.Response backed by an in-memory body."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    response = requests.Response()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers or {})
    response.raw = FakeRaw(body)
    return response


def wait_for(predicate, timeout=2.0):
    """Poll predicate until it holds or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_response():
    """Factory for fake HTTP responses."""
    return build_response


@pytest.fixture
def transport():
    """Mocked requests.Session-compatible transport."""
    mock_transport = MagicMock()
    mock_transport.request.return_value = build_response(200)
    return mock_transport


@pytest.fixture
def client(transport):
    """Storage client wired to the mocked transport."""
    return StorageClient(BASE_URL + "/", api_key=API_KEY, transport=transport)


@pytest.fixture
def anonymous_client(transport):
    """Storage client without an API key."""
    return StorageClient(BASE_URL, transport=transport)
