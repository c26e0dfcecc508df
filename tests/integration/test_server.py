"""
Integration tests: a real server on 127.0.0.1, real client sockets.
"""

import http.client
import logging
import socket
import threading
import time

import pytest

from conftest import fetch, raw_exchange, without_date

from pinghttp import HTTPServer, ServerConfig, start
from pinghttp.http import Router, text_response


def assert_refused(address):
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(address, timeout=2).close()


def read_until_closed(sock: socket.socket) -> bytes:
    """Read until EOF; a reset counts as EOF."""
    chunks = []
    try:
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    except ConnectionResetError:
        pass
    return b"".join(chunks)


class TestScenario:
    """Start → /health → / → forced stop → refused."""

    def test_full_lifecycle(self, config: ServerConfig):
        handle = start(config)
        host, port = handle.address

        assert port != 0
        assert handle.url == f"http://{host}:{port}/"
        assert handle.running

        status, _, body = fetch(handle, "GET", "/health")
        assert (status, body) == (200, b"OK")

        status, _, body = fetch(handle, "GET", "/")
        assert (status, body) == (200, b"hello world")

        handle.stop(force=True)

        assert not handle.running
        assert handle.wait(timeout=0) is True
        assert_refused((host, port))

    def test_startup_logged(self, config: ServerConfig, caplog):
        with caplog.at_level(logging.INFO, logger="pinghttp.server"):
            handle = start(config)
        try:
            assert f"http/1 server listening at: {handle.url}" in caplog.text
        finally:
            handle.stop(force=True)


class TestRoutes:
    """Responses for every method and body."""

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    def test_health_any_method(self, server, method: str):
        status, headers, body = fetch(
            server, method, "/health",
            body=b"some payload", headers={"X-Anything": "1"},
        )

        assert status == 200
        assert body == b"OK"
        assert headers["Content-Type"] == "text/plain; charset=utf-8"

    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    def test_root_any_method(self, server, method: str):
        status, _, body = fetch(server, method, "/", body=b'{"x": 1}')
        assert (status, body) == (200, b"hello world")

    @pytest.mark.parametrize("path", ["/missing", "/health/", "/HEALTH", "/index.html"])
    def test_unmatched_path(self, server, path: str):
        status, _, body = fetch(server, "GET", path)
        assert (status, body) == (404, b"Not Found")

    @pytest.mark.parametrize("target", ["//health", "//", "/health;v=1", "/%68ealth", "//x/health"])
    def test_target_not_normalized(self, server, target: str):
        """Targets that only resemble a route after URL decoding are 404."""
        data = raw_exchange(
            server, f"GET {target} HTTP/1.1\r\nConnection: close\r\n\r\n".encode()
        )

        assert data.startswith(b"HTTP/1.1 404 Not Found\r\n")
        assert data.endswith(b"\r\n\r\nNot Found")

    def test_absolute_form_target_routed_by_path(self, server):
        data = raw_exchange(
            server, b"GET http://example.com/health HTTP/1.1\r\nConnection: close\r\n\r\n"
        )
        assert data.endswith(b"\r\n\r\nOK")

    def test_query_string_ignored_for_routing(self, server):
        status, _, body = fetch(server, "GET", "/health?verbose=1&x")
        assert (status, body) == (200, b"OK")

    def test_head_has_no_body(self, server):
        status, headers, body = fetch(server, "HEAD", "/")

        assert status == 200
        assert body == b""
        assert headers["Content-Length"] == "11"

    def test_repeated_requests_identical(self, server):
        responses = [fetch(server, "GET", "/health") for _ in range(5)]
        first_status, first_headers, first_body = responses[0]

        for status, headers, body in responses[1:]:
            assert status == first_status
            assert body == first_body
            assert without_date(headers) == without_date(first_headers)

    def test_custom_router(self, config: ServerConfig):
        router = Router({"/ping": lambda request: text_response("pong")})
        handle = start(config, router)
        try:
            assert fetch(handle, "GET", "/ping")[2] == b"pong"
            assert fetch(handle, "GET", "/health")[0] == 404
        finally:
            handle.stop(force=True)


class TestConcurrency:
    """Many clients at once."""

    def test_concurrent_clients(self, server):
        results = {}
        errors = []

        def worker(index: int):
            path = "/health" if index % 2 else "/"
            try:
                results[index] = (path, fetch(server, "POST", path, body=b"x" * index))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(32)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert len(results) == 32
        for path, (status, _, body) in results.values():
            assert status == 200
            assert body == (b"OK" if path == "/health" else b"hello world")


class TestConnectionHandling:
    """Keep-alive, pipelining and malformed input."""

    def test_keep_alive_reuses_connection(self, server):
        host, port = server.address
        conn = http.client.HTTPConnection(host, port, timeout=5)
        try:
            conn.request("GET", "/health")
            response = conn.getresponse()
            assert response.getheader("Connection") == "keep-alive"
            response.read()
            first_sock = conn.sock

            conn.request("GET", "/")
            response = conn.getresponse()
            assert response.read() == b"hello world"
            assert conn.sock is first_sock
        finally:
            conn.close()

    def test_http10_closes(self, server):
        data = raw_exchange(server, b"GET / HTTP/1.0\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Connection: close\r\n" in data
        assert data.endswith(b"hello world")

    def test_connection_close_honoured(self, server):
        data = raw_exchange(server, b"GET /health HTTP/1.1\r\nConnection: close\r\n\r\n")
        assert data.endswith(b"\r\n\r\nOK")

    def test_pipelined_in_order(self, server):
        data = raw_exchange(
            server,
            b"GET /health HTTP/1.1\r\n\r\n"
            b"POST / HTTP/1.1\r\nContent-Length: 3\r\n\r\nabc"
            b"GET /nope HTTP/1.1\r\nConnection: close\r\n\r\n",
        )

        first = data.find(b"\r\n\r\nOK")
        second = data.find(b"\r\n\r\nhello world")
        third = data.find(b"HTTP/1.1 404 Not Found")

        assert data.count(b"HTTP/1.1 ") == 3
        assert -1 < first < second < third

    def test_malformed_request(self, server):
        data = raw_exchange(server, b"this is not http\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert b"Connection: close\r\n" in data

    def test_unsupported_version(self, server):
        data = raw_exchange(server, b"GET / HTTP/3.0\r\n\r\n")
        assert data.startswith(b"HTTP/1.1 505 HTTP Version Not Supported\r\n")

    def test_oversized_request(self):
        handle = start(ServerConfig(port=0, buffer_size=1024, max_request_size=2048))
        try:
            data = raw_exchange(handle, b"GET / HTTP/1.1\r\nX-Pad: " + b"a" * 2100)
            assert data.startswith(b"HTTP/1.1 413 Payload Too Large\r\n")
        finally:
            handle.stop(force=True)

    def test_server_keep_alive_disabled(self):
        handle = start(ServerConfig(port=0, keep_alive=False))
        try:
            data = raw_exchange(handle, b"GET / HTTP/1.1\r\n\r\n")
            assert b"Connection: close\r\n" in data
            assert data.endswith(b"hello world")
        finally:
            handle.stop(force=True)


class TestFaults:
    """Handler exceptions and bind failures."""

    def test_handler_exception_drops_connection(self, config: ServerConfig, caplog):
        def broken(request):
            raise RuntimeError("kaboom")

        router = Router({"/boom": broken, "/ok": lambda request: text_response("fine")})
        handle = start(config, router)
        try:
            with caplog.at_level(logging.ERROR):
                with socket.create_connection(handle.address, timeout=5) as sock:
                    sock.sendall(b"GET /boom HTTP/1.1\r\n\r\n")
                    assert read_until_closed(sock) == b""

            errors = [r for r in caplog.records if r.levelno == logging.ERROR]
            assert any(r.getMessage() == "internal server error kaboom" for r in errors)
            assert any(r.exc_info for r in errors)

            # other connections are unaffected
            assert fetch(handle, "GET", "/ok")[2] == b"fine"
        finally:
            handle.stop(force=True)

    def test_bind_failure_raises(self, server):
        host, port = server.address
        with pytest.raises(OSError):
            start(ServerConfig(host=host, port=port))

        # the first server is still fine
        assert fetch(server, "GET", "/health")[0] == 200

    def test_invalid_config_rejected_before_bind(self):
        with pytest.raises(ValueError):
            HTTPServer(ServerConfig(port=-1))

    def test_access_log(self, server, caplog):
        with caplog.at_level(logging.DEBUG, logger="pinghttp.access"):
            fetch(server, "GET", "/health")

        assert '"GET /health" 200' in caplog.text


class TestStop:
    """Forced and graceful shutdown."""

    def test_stop_idempotent(self, config: ServerConfig):
        handle = start(config)
        address = handle.address

        handle.stop(force=True)
        handle.stop(force=True)
        handle.stop(force=False)

        assert_refused(address)

    def test_forced_stop_aborts_open_connections(self, config: ServerConfig):
        handle = start(config)
        with socket.create_connection(handle.address, timeout=5) as sock:
            sock.sendall(b"GET /health HTTP/1.1\r\n")  # never finished
            time.sleep(0.2)

            handle.stop(force=True)

            assert read_until_closed(sock) == b""

    def test_graceful_stop_finishes_in_flight_request(self, config: ServerConfig):
        handle = start(config)
        with socket.create_connection(handle.address, timeout=5) as sock:
            sock.sendall(b"GET /health HTTP/1.1\r\n")
            time.sleep(0.2)

            stopper = threading.Thread(target=handle.stop, kwargs={"force": False})
            stopper.start()
            time.sleep(0.2)
            assert stopper.is_alive()

            sock.sendall(b"Host: x\r\n\r\n")
            data = read_until_closed(sock)

            stopper.join(timeout=5)

        assert not stopper.is_alive()
        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Connection: close\r\n" in data
        assert data.endswith(b"\r\n\r\nOK")

    def test_graceful_stop_refuses_new_connections(self, config: ServerConfig):
        handle = start(config)
        address = handle.address
        with socket.create_connection(address, timeout=5) as sock:
            sock.sendall(b"GET /health HTTP/1.1\r\n")
            time.sleep(0.2)

            stopper = threading.Thread(target=handle.stop, kwargs={"force": False})
            stopper.start()
            time.sleep(0.2)

            try:
                assert stopper.is_alive()
                assert_refused(address)
            finally:
                sock.sendall(b"\r\n")
                read_until_closed(sock)
                stopper.join(timeout=5)

        assert not stopper.is_alive()

    def test_graceful_stop_closes_idle_keep_alive(self, config: ServerConfig):
        handle = start(config)
        host, port = handle.address
        conn = http.client.HTTPConnection(host, port, timeout=5)
        try:
            conn.request("GET", "/")
            conn.getresponse().read()

            started = time.monotonic()
            handle.stop(force=False)

            assert time.monotonic() - started < config.drain_timeout
            assert conn.sock.recv(1024) == b""
        finally:
            conn.close()

    def test_graceful_stop_gives_up_after_drain_timeout(self):
        handle = start(ServerConfig(port=0, drain_timeout=0.3))
        with socket.create_connection(handle.address, timeout=5) as sock:
            sock.sendall(b"GET / HTTP/1.1\r\n")
            time.sleep(0.2)

            started = time.monotonic()
            handle.stop(force=False)
            elapsed = time.monotonic() - started

            assert 0.2 <= elapsed < 3
            assert read_until_closed(sock) == b""
