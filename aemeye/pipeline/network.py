"""HTTP side of a probe.

This module handles:
- Building the per-worker requests session (browser user agent, redirect
  cap, relaxed TLS)
- Fetching a body under a combined connect+read deadline
- Error classification

Certificate and hostname verification are switched off here and only here:
probe targets are routinely self-signed or misconfigured. Nothing else in
the package should reuse these sessions.
"""

import codecs
import socket
import time
import warnings
from typing import Union

import requests
from urllib3.exceptions import InsecureRequestWarning

USER_AGENT = 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:95.0) Gecko/20100101 Firefox/95.0'
MAX_REDIRECTS = 10
CHUNK_SIZE = 64 * 1024


class ProbeTimeout(requests.Timeout):
    """The overall deadline expired while the body was streaming."""


class BodyDecodeError(requests.RequestException):
    """The body could not be decoded as text."""


class ProbeSession(requests.Session):
    """Session that never verifies certificates or hostnames.

    ``verify`` is forced off per request so that REQUESTS_CA_BUNDLE and
    friends from the environment cannot turn it back on.
    """

    def __init__(self):
        super().__init__()
        self.headers['User-Agent'] = USER_AGENT
        self.max_redirects = MAX_REDIRECTS
        self.verify = False

    def request(self, method, url, *args, **kwargs):
        kwargs['verify'] = False
        with warnings.catch_warnings():
            warnings.simplefilter('ignore', InsecureRequestWarning)
            return super().request(method, url, *args, **kwargs)


def build_session() -> requests.Session:
    return ProbeSession()


def fetch_body(session: requests.Session, url: str, timeout: float, max_bytes: int) -> str:
    """GET ``url`` and return the decoded body (at most ``max_bytes``).

    ``timeout`` bounds connect and read together: the same deadline is
    checked while the body streams. Raises requests exceptions on failure.
    """
    deadline = time.monotonic() + timeout
    resp = session.get(url, timeout=(timeout, timeout), stream=True, allow_redirects=True)
    try:
        chunks = []
        size = 0
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise ProbeTimeout(f'body read exceeded {timeout}s')
            if not chunk:
                continue
            chunks.append(chunk)
            size += len(chunk)
            if size >= max_bytes:
                break
        raw = b''.join(chunks)[:max_bytes]
        truncated = size >= max_bytes
        encoding = resp.encoding or 'utf-8'
    finally:
        resp.close()
    try:
        decoder = codecs.getincrementaldecoder(encoding)(errors='strict')
        # a cut body may end inside a multibyte sequence; that tail is dropped
        return decoder.decode(raw, final=not truncated)
    except (UnicodeDecodeError, LookupError) as exc:
        raise BodyDecodeError(f'cannot decode body as {encoding}: {exc}') from exc


# ============ Error Classification ============

def classify_error(err: Union[Exception, str]) -> str:
    """Classify a probe failure into a category for metrics.

    Returns:
        One of: timeout, dns, ssl, conn, redirects, invalid_url, body, other
    """
    if isinstance(err, requests.Timeout):
        return 'timeout'
    if isinstance(err, requests.TooManyRedirects):
        return 'redirects'
    if isinstance(err, (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                        requests.exceptions.InvalidSchema)):
        return 'invalid_url'
    if isinstance(err, (BodyDecodeError, requests.exceptions.ContentDecodingError,
                        requests.exceptions.ChunkedEncodingError)):
        return 'body'
    if isinstance(err, requests.exceptions.SSLError):
        return 'ssl'
    msg = str(err).lower()
    if isinstance(err, socket.gaierror) or 'name or service not known' in msg or 'nodename nor servname' in msg \
            or 'nxdomain' in msg or 'failed to resolve' in msg or 'getaddrinfo failed' in msg:
        return 'dns'
    if 'timed out' in msg or 'timeout' in msg:
        return 'timeout'
    if 'ssl' in msg or 'certificate' in msg:
        return 'ssl'
    if isinstance(err, requests.ConnectionError) or 'connection refused' in msg or 'network is unreachable' in msg:
        return 'conn'
    return 'other'


__all__ = [
    'USER_AGENT',
    'MAX_REDIRECTS',
    'ProbeSession',
    'ProbeTimeout',
    'BodyDecodeError',
    'build_session',
    'fetch_body',
    'classify_error',
]
