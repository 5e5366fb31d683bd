import asyncio
import socket
import threading
from dataclasses import dataclass
from pathlib import Path
from signal import SIGINT, SIGTERM
from typing import Any, Callable, Literal, NamedTuple, Protocol

from .config import HOST, LOG_REQUESTS, PORT
from .http.model import (
	HTTPBodyWriter,
	HTTPProcessingStatus,
	HTTPRequest,
	HTTPResponse,
)
from .http.parser import HTTPParser
from .utils.limits import LimitType, unlimit
from .utils.logging import event, exception, info, warning, error


class Application(Protocol):
	"""Anything that turns a request into a response, like the `FileService`."""

	def process(self, request: HTTPRequest) -> HTTPResponse: ...


class ServerBindError(OSError):
	"""The listener could not be bound, the server can't start."""


@dataclass(slots=True)
class ServerState:
	isRunning: bool = True

	def stop(self) -> None:
		info("Server stopping…")
		self.isRunning = False

	def onException(
		self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
	) -> None:
		e = context.get("exception")
		if e:
			exception(e)


class ServerOptions(NamedTuple):
	host: str = "0.0.0.0"  # nosec: B104
	port: int | str = 8080
	backlog: int = 1_024
	# This is the polling timeout for accepting new connections, it is
	# how often the server checks if it should keep running.
	polling: float = 1.0
	readsize: int = 4_096
	keepalive: float = 60.0
	logRequests: bool = True
	condition: Callable[[], bool] | None = None
	stopSignals: bool = True


OPTIONS: ServerOptions = ServerOptions()

SERVER_ERROR: bytes = (
	b"HTTP/1.1 500 Internal Server Error\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 21\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Internal Server Error"
)

SERVER_BAD_REQUEST: bytes = (
	b"HTTP/1.1 400 Bad Request\r\n"
	b"Content-Type: text/plain\r\n"
	b"Content-Length: 11\r\n"
	b"Connection: close\r\n"
	b"\r\n"
	b"Bad Request"
)


class AIOSocketBodyWriter(HTTPBodyWriter):
	"""Specialized body writer to work with AIO sockets."""

	def __init__(
		self,
		client: "socket.socket",
		loop: asyncio.AbstractEventLoop,
	) -> None:
		super().__init__()
		self.client: socket.socket = client
		self.loop: asyncio.AbstractEventLoop = loop

	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool:
		if chunk:
			await self.loop.sock_sendall(self.client, chunk)
		return True

	async def _writeFile(
		self, path: Path, start: int, length: int, size: int = 64_000
	) -> bool:
		if length <= 0:
			return True
		with open(path, "rb") as f:
			await self.loop.sock_sendfile(self.client, f, start, length)
		return True


class AIOSocketServer:
	"""AsyncIO backend using sockets directly."""

	@classmethod
	async def OnRequest(
		cls,
		app: Application,
		client: socket.socket,
		*,
		loop: asyncio.AbstractEventLoop,
		options: ServerOptions,
	) -> None:
		"""Asynchronous worker, processing the requests sent over a client
		socket until it closes or times out."""
		size: int = options.readsize
		buffer = bytearray(size)
		keep_alive: bool = True
		try:
			parser: HTTPParser = HTTPParser()
			writer: AIOSocketBodyWriter = AIOSocketBodyWriter(client, loop)
			# With keep-alive, all the requests of a connection go through
			# this loop, until `Connection: close` or the timeout expires.
			while keep_alive:
				try:
					n = await asyncio.wait_for(
						loop.sock_recv_into(client, buffer),
						timeout=options.keepalive,
					)
				except asyncio.TimeoutError:
					# Idle keep-alive connection
					break
				if not n:
					# No data means the client closed the connection
					break
				# With HTTP pipelining, a single read may hold more than one
				# request.
				for atom in parser.feed(bytes(buffer[:n])):
					if atom is HTTPProcessingStatus.BadFormat:
						warning("Malformed request", Client=f"{id(client):x}")
						await writer.write(SERVER_BAD_REQUEST)
						keep_alive = False
						break
					elif isinstance(atom, HTTPRequest):
						if options.logRequests:
							event(atom.method, atom.path)
						if not atom.keepAlive:
							keep_alive = False
						res = await cls.SendResponse(atom, app, writer, keep_alive)
						if res is None:
							keep_alive = False
							break
						elif not keep_alive:
							# Pipelined requests after a close are dropped
							break
		except (BrokenPipeError, ConnectionResetError):
			# The client went away early
			pass
		except Exception as e:
			exception(e)
		finally:
			client.close()

	@staticmethod
	async def SendResponse(
		request: HTTPRequest,
		app: Application,
		writer: HTTPBodyWriter,
		keepAlive: bool = True,
	) -> HTTPResponse | None:
		"""Processes the request within the application and sends a response
		using the given writer. Returns `None` when no response could be
		produced, in which case an error is sent and the connection should
		be closed."""
		try:
			res: HTTPResponse = app.process(request)
		except Exception as e:
			exception(e, f"Could not process {request.method} {request.path}")
			await writer.write(SERVER_ERROR)
			return None
		if not keepAlive:
			res.setHeader("Connection", "close")
		elif request.protocol == "HTTP/1.0":
			res.setHeader("Connection", "keep-alive")
		await writer.write(res.head())
		await writer.write(res.body)
		return res

	@classmethod
	def Bind(cls, options: ServerOptions) -> socket.socket:
		"""Creates the listening socket, raising a `ServerBindError` when the
		host and port can't be bound."""
		server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
		server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
		try:
			port: int = int(options.port)
			server.bind((options.host, port))
			# The argument is the backlog of connections that will be accepted
			# before they are refused.
			server.listen(options.backlog)
		except (OSError, ValueError, OverflowError) as e:
			server.close()
			error(
				f"Unable to bind to {options.host}:{options.port}, aborting: {e}",
				"HOSTPORTERR",
			)
			raise ServerBindError(str(e)) from e
		server.setblocking(False)
		return server

	@classmethod
	async def Serve(
		cls,
		app: Application,
		options: ServerOptions = OPTIONS,
	) -> None:
		"""Main server coroutine."""
		server = cls.Bind(options)
		tasks: set[asyncio.Task[None]] = set()
		loop = asyncio.get_running_loop()

		state = ServerState()
		# Signal handlers can only be registered from the main thread.
		if (
			options.stopSignals
			and threading.current_thread() is threading.main_thread()
		):
			loop.add_signal_handler(SIGINT, state.stop)
			loop.add_signal_handler(SIGTERM, state.stop)
		loop.set_exception_handler(state.onException)

		try:
			while state.isRunning:
				if options.condition and not options.condition():
					break
				try:
					client, _ = await asyncio.wait_for(
						loop.sock_accept(server), timeout=options.polling or 1.0
					)
				except asyncio.TimeoutError:
					continue
				except OSError as e:
					# This can be: [OSError] [Errno 24] Too many open files
					if e.errno == 24:
						await asyncio.sleep(0.1)
					else:
						exception(e)
					continue
				client.setblocking(False)
				task = loop.create_task(
					cls.OnRequest(app, client, loop=loop, options=options)
				)
				tasks.add(task)
				task.add_done_callback(tasks.discard)
		finally:
			server.close()
			for task in tasks:
				task.cancel()
			await asyncio.gather(*tasks, return_exceptions=True)


def run(
	app: Application,
	*,
	host: str = HOST,
	port: int | str = PORT,
	backlog: int = OPTIONS.backlog,
	condition: Callable[[], bool] | None = None,
	polling: float = OPTIONS.polling,
	logRequests: bool = LOG_REQUESTS,
	keepalive: float = OPTIONS.keepalive,
	stopSignals: bool = OPTIONS.stopSignals,
) -> None:
	"""High level function to run the server, blocking until it is stopped.
	Exits the process with status 1 when the listener can't be bound."""
	unlimit(LimitType.Files)
	options = ServerOptions(
		host=host,
		port=port,
		backlog=backlog,
		condition=condition,
		polling=polling,
		logRequests=logRequests,
		keepalive=keepalive,
		stopSignals=stopSignals,
	)
	try:
		asyncio.run(AIOSocketServer.Serve(app, options))
	except ServerBindError as e:
		raise SystemExit(1) from e
	except KeyboardInterrupt:
		event("ManualShutdown")
	event("EOK")


# EOF
