import sys
import pathlib
import threading

import pytest

# Ensure project root is on sys.path so 'import aemeye' works when pytest runs
# from different working directories or without an editable install.
_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from aemeye.logging_utils import reset_suppressed_state


class FakeResponse:
    def __init__(self, body, encoding='utf-8'):
        self._body = body if isinstance(body, bytes) else body.encode(encoding or 'utf-8')
        self.encoding = encoding
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def close(self):
        self.closed = True


class FakeSession:
    """Stand-in for requests.Session keyed by URL.

    Values are a body (str/bytes), a FakeResponse, or an exception instance
    to raise. Unknown URLs raise ConnectionError.
    """

    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url, **kwargs):
        import requests

        with self._lock:
            self.calls.append(url)
        value = self.routes.get(url)
        if value is None:
            raise requests.ConnectionError(f'Connection refused: {url}')
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, FakeResponse):
            return value
        return FakeResponse(value)

    def close(self):
        self.closed = True


class SessionFactory:
    """Hands every worker its own FakeSession over shared routes."""

    def __init__(self, routes):
        self.routes = routes
        self.sessions = []

    def __call__(self):
        session = FakeSession(self.routes)
        self.sessions.append(session)
        return session

    @property
    def calls(self):
        return [url for s in self.sessions for url in s.calls]


@pytest.fixture
def session_factory():
    def make(routes):
        return SessionFactory(routes)
    return make


@pytest.fixture(autouse=True)
def _reset_log_suppression():
    reset_suppressed_state()
    yield
    reset_suppressed_state()
