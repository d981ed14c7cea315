"""
Deadline tests for ResilientFetcher against a real socket.

The local server sends headers straight away and then dribbles or
withholds the body, so the per-read socket timeout alone never fires
in time.
"""

import socket
import threading
import time
from unittest.mock import MagicMock

import pytest
import requests
import urllib3

from sitmon.errors import FetchTimeout, TransportFailure


class SlowBodyServer:
    """One-connection-at-a-time HTTP server with a controllable body."""

    def __init__(self, content_length, body, byte_interval=None):
        self.content_length = content_length
        self.body = body
        self.byte_interval = byte_interval
        self.done = threading.Event()
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(('127.0.0.1', 0))
        self.sock.listen(4)
        self.sock.settimeout(0.2)
        self.thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def url(self):
        return f'http://127.0.0.1:{self.sock.getsockname()[1]}/feed'

    def __enter__(self):
        self.thread.start()
        return self

    def __exit__(self, *exc):
        self.done.set()
        self.thread.join(2)
        self.sock.close()

    def _serve(self):
        while not self.done.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with conn:
                self._handle(conn)

    def _handle(self, conn):
        conn.settimeout(0.2)
        try:
            conn.recv(4096)
            conn.sendall(
                b'HTTP/1.1 200 OK\r\n'
                b'Content-Type: text/plain\r\n'
                + f'Content-Length: {self.content_length}\r\n\r\n'.encode()
            )
            for byte in self.body:
                if self.done.is_set():
                    return
                conn.sendall(bytes([byte]))
                if self.byte_interval:
                    time.sleep(self.byte_interval)
            # Hold the connection open without finishing the body
            while not self.done.wait(0.05):
                pass
        except OSError:
            return


def test_trickled_body_is_cut_at_deadline(fetcher):
    # 40 bytes at 0.1s each would take four seconds to arrive
    with SlowBodyServer(40, b'x' * 40, byte_interval=0.1) as server:
        started = time.monotonic()
        with pytest.raises(FetchTimeout) as exc_info:
            fetcher.fetch(server.url, timeout_seconds=0.5, retry_attempts=1, use_cache=False)
        elapsed = time.monotonic() - started

    assert exc_info.value.timeout_seconds == 0.5
    assert elapsed < 1.5


def test_stalled_body_is_fetch_timeout(fetcher):
    with SlowBodyServer(100, b'ok') as server:
        started = time.monotonic()
        with pytest.raises(FetchTimeout):
            fetcher.fetch(server.url, timeout_seconds=0.5, retry_attempts=1, use_cache=False)
        elapsed = time.monotonic() - started

    assert elapsed < 1.5


def test_complete_body_is_returned(fetcher):
    with SlowBodyServer(5, b'hello') as server:
        assert fetcher.fetch(server.url, timeout_seconds=2, use_cache=False) == 'hello'


def _streaming_session(read_error):
    response = MagicMock()
    response.ok = True
    response.iter_content.side_effect = read_error
    session = MagicMock()
    session.get.return_value = response
    return session


class TestStreamingReadErrors:
    """How errors raised mid-body are classified."""

    def test_read_timeout_wrapped_in_connection_error(self, fetcher):
        read_timeout = urllib3.exceptions.ReadTimeoutError(None, '/feed', 'Read timed out.')
        fetcher.session = _streaming_session(requests.exceptions.ConnectionError(read_timeout))

        with pytest.raises(FetchTimeout) as exc_info:
            fetcher.fetch('https://feed.example.test/slow', timeout_seconds=3, retry_attempts=1)

        assert exc_info.value.timeout_seconds == 3

    def test_broken_connection_stays_transport_failure(self, fetcher):
        fetcher.session = _streaming_session(
            requests.exceptions.ChunkedEncodingError('Connection broken')
        )

        with pytest.raises(TransportFailure):
            fetcher.fetch('https://feed.example.test/broken', retry_attempts=1)
