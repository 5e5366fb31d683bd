import asyncio
import http.client
import socket
import threading
import time
from pathlib import Path
from typing import Iterator

import pytest

from webserver.server import AIOSocketServer, ServerBindError, ServerOptions, run
from webserver.services.files import FileService

INDEX_HTML: bytes = b"<!DOCTYPE html><title>Console</title>\n"


def freePort() -> int:
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
		s.bind(("127.0.0.1", 0))
		return int(s.getsockname()[1])


def waitFor(port: int, timeout: float = 5.0) -> None:
	deadline = time.monotonic() + timeout
	while time.monotonic() < deadline:
		try:
			with socket.create_connection(("127.0.0.1", port), timeout=0.5):
				return
		except OSError:
			time.sleep(0.05)
	raise TimeoutError(f"Server did not start on port {port}")


@pytest.fixture
def root(tmp_path: Path) -> Path:
	web = tmp_path / "web"
	web.mkdir()
	(web / "index.html").write_bytes(INDEX_HTML)
	(web / "app.js").write_text("console.log('ok');")
	(tmp_path / "secret.txt").write_text("top secret")
	return web


@pytest.fixture
def server(root: Path) -> Iterator[int]:
	port = freePort()
	stopped = threading.Event()
	options = ServerOptions(
		host="127.0.0.1",
		port=str(port),
		polling=0.05,
		keepalive=2.0,
		logRequests=False,
		condition=lambda: not stopped.is_set(),
	)
	thread = threading.Thread(
		target=asyncio.run,
		args=(AIOSocketServer.Serve(FileService(root), options),),
		daemon=True,
	)
	thread.start()
	waitFor(port)
	yield port
	stopped.set()
	thread.join(timeout=5)


def fetch(
	port: int, path: str, method: str = "GET", headers: dict[str, str] | None = None
) -> tuple[int, dict[str, str], bytes]:
	conn = http.client.HTTPConnection("127.0.0.1", port, timeout=5)
	try:
		conn.request(method, path, headers=headers or {})
		res = conn.getresponse()
		return res.status, dict(res.getheaders()), res.read()
	finally:
		conn.close()


def test_get_index(server: int):
	status, headers, body = fetch(server, "/index.html")
	assert status == 301
	status, headers, body = fetch(server, "/")
	assert status == 200
	assert body == INDEX_HTML
	assert headers["Content-Type"].startswith("text/html")


def test_get_file(server: int, root: Path):
	status, headers, body = fetch(server, "/app.js")
	assert status == 200
	assert body == (root / "app.js").read_bytes()
	assert headers["Content-Type"] == "text/javascript; charset=utf-8"


def test_head(server: int, root: Path):
	status, headers, body = fetch(server, "/app.js", "HEAD")
	assert status == 200
	assert body == b""
	assert headers["Content-Length"] == str((root / "app.js").stat().st_size)


def test_not_found(server: int):
	status, _, _ = fetch(server, "/nothing-here.txt")
	assert status == 404


def test_traversal(server: int):
	with socket.create_connection(("127.0.0.1", server), timeout=5) as s:
		s.sendall(b"GET /../secret.txt HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")
		data = b""
		while chunk := s.recv(4096):
			data += chunk
	assert data.startswith(b"HTTP/1.1 404 ")
	assert b"top secret" not in data


def test_keep_alive(server: int):
	conn = http.client.HTTPConnection("127.0.0.1", server, timeout=5)
	try:
		for _ in range(3):
			conn.request("GET", "/app.js")
			res = conn.getresponse()
			assert res.status == 200
			assert res.read() == b"console.log('ok');"
	finally:
		conn.close()


def test_pipelined_requests(server: int):
	with socket.create_connection(("127.0.0.1", server), timeout=5) as s:
		s.sendall(
			b"GET /app.js HTTP/1.1\r\nHost: x\r\n\r\n"
			b"GET /missing HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n"
		)
		data = b""
		while chunk := s.recv(4096):
			data += chunk
	assert data.startswith(b"HTTP/1.1 200 OK\r\n")
	assert b"HTTP/1.1 404 Not Found\r\n" in data


def test_no_response_after_close(server: int):
	with socket.create_connection(("127.0.0.1", server), timeout=5) as s:
		s.sendall(
			b"GET /app.js HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n"
			b"GET /missing HTTP/1.1\r\nHost: x\r\n\r\n"
		)
		data = b""
		while chunk := s.recv(4096):
			data += chunk
	assert data.startswith(b"HTTP/1.1 200 OK\r\n")
	assert data.count(b"HTTP/1.1 ") == 1
	assert b"Connection: close\r\n" in data


def test_bad_request(server: int):
	with socket.create_connection(("127.0.0.1", server), timeout=5) as s:
		s.sendall(b"garbage\r\n\r\n")
		data = b""
		while chunk := s.recv(4096):
			data += chunk
	assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")


def test_bind_failure_exits(root: Path):
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
		taken.bind(("127.0.0.1", 0))
		taken.listen(1)
		port = taken.getsockname()[1]
		with pytest.raises(SystemExit) as e:
			run(FileService(root), host="127.0.0.1", port=port, stopSignals=False)
		assert e.value.code == 1


def test_invalid_port_exits(root: Path):
	with pytest.raises(SystemExit) as e:
		run(FileService(root), host="127.0.0.1", port="not-a-port", stopSignals=False)
	assert e.value.code == 1


def test_bind_error_type():
	with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
		taken.bind(("127.0.0.1", 0))
		taken.listen(1)
		port = taken.getsockname()[1]
		with pytest.raises(ServerBindError):
			AIOSocketServer.Bind(ServerOptions(host="127.0.0.1", port=port))


def test_listens_on_configured_port_only(root: Path):
	port, other = freePort(), freePort()
	while other == port:
		other = freePort()
	stopped = threading.Event()
	thread = threading.Thread(
		target=run,
		args=(FileService(root),),
		kwargs=dict(
			host="127.0.0.1",
			port=str(port),
			polling=0.05,
			condition=lambda: not stopped.is_set(),
			stopSignals=False,
			logRequests=False,
		),
		daemon=True,
	)
	thread.start()
	try:
		waitFor(port)
		with pytest.raises(OSError):
			socket.create_connection(("127.0.0.1", other), timeout=0.5).close()
	finally:
		stopped.set()
		thread.join(timeout=5)


# EOF
