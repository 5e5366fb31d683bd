import os.path
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import (
	Any,
	Literal,
	NamedTuple,
	TypeAlias,
	Union,
)

from ..utils.io import DEFAULT_ENCODING
from .api import ResponseFactory
from .status import HTTP_STATUS

# Header names come from clients, the cache must stay bounded
HEADERNAME_CACHE: int = 512

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


@lru_cache(maxsize=HEADERNAME_CACHE)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`."""
	return "-".join(_.capitalize() for _ in name.lower().split("-"))


# -----------------------------------------------------------------------------
#
# DATA MODEL
#
# -----------------------------------------------------------------------------


class HTTPRequestLine(NamedTuple):
	"""Represents a request status line"""

	method: str
	path: str
	query: str
	protocol: str


class HTTPHeaders(NamedTuple):
	"""Wraps HTTP headers, keeping key information for response/request processing."""

	headers: dict[str, str]
	contentType: str | None = None
	contentLength: int | None = None


class HTTPProcessingStatus(Enum):
	"""Internal parser/processor state management"""

	Body = 1
	BadFormat = 12


# Type alias for what the parser produces
HTTPAtom: TypeAlias = Union[
	HTTPRequestLine,
	HTTPHeaders,
	HTTPProcessingStatus,
	"HTTPRequest",
]

# -----------------------------------------------------------------------------
#
# BODY
#
# -----------------------------------------------------------------------------


class HTTPBodyBlob(NamedTuple):
	"""Represents a body as bytes."""

	payload: bytes = b""
	length: int = 0


class HTTPBodyFile(NamedTuple):
	"""Represents an HTTP body read from a file, optionally restricted
	to `length` bytes starting at `start`."""

	path: Path
	start: int = 0
	length: int | None = None

	@property
	def size(self) -> int:
		return (
			self.path.stat().st_size - self.start
			if self.length is None
			else self.length
		)


THTTPBody: TypeAlias = HTTPBodyBlob | HTTPBodyFile


class HTTPBodyWriter(ABC):
	"""A generic writer for bodies, subclassed by transports."""

	async def write(self, body: THTTPBody | bytes | None) -> bool:
		"""Writes the given type of body."""
		if isinstance(body, bytes):
			return await self._writeBytes(body)
		elif isinstance(body, HTTPBodyBlob):
			return await self._writeBytes(body.payload)
		elif isinstance(body, HTTPBodyFile):
			return await self._writeFile(body.path, body.start, body.size)
		elif body is None:
			return True
		else:
			raise ValueError(f"Unsupported body format: {body}")

	async def _writeFile(
		self, path: Path, start: int, length: int, size: int = 64_000
	) -> bool:
		with open(path, "rb") as f:
			f.seek(start)
			left: int = length
			while left > 0 and (chunk := f.read(min(size, left))):
				left -= len(chunk)
				await self._writeBytes(chunk, left > 0)
		return True

	@abstractmethod
	async def _writeBytes(
		self, chunk: bytes | None | Literal[False], more: bool = False
	) -> bool: ...


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest(ResponseFactory["HTTPResponse"]):
	"""Represents an HTTP requests, which also acts as a factory for
	responses."""

	__slots__ = [
		"protocol",
		"method",
		"path",
		"query",
		"_headers",
	]

	def __init__(
		self,
		method: str,
		path: str,
		query: dict[str, str] | None,
		headers: HTTPHeaders,
		protocol: str = "HTTP/1.1",
	):
		super().__init__()
		self.method: str = method
		self.path: str = path
		self.query: dict[str, str] | None = query
		self.protocol: str = protocol
		self._headers: HTTPHeaders = headers

	@property
	def headers(self) -> dict[str, str]:
		return self._headers.headers

	def header(self, name: str) -> str | None:
		return self._headers.headers.get(headername(name))

	@property
	def keepAlive(self) -> bool:
		connection: str = (self.header("Connection") or "").lower()
		if self.protocol == "HTTP/1.0":
			return connection == "keep-alive"
		else:
			return connection != "close"

	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> "HTTPResponse":
		return HTTPResponse.Create(
			status=status,
			message=message,
			content=content,
			contentType=contentType,
			contentLength=contentLength,
			protocol="HTTP/1.0" if self.protocol == "HTTP/1.0" else "HTTP/1.1",
			headers=headers,
		)

	def __str__(self) -> str:
		return f"Request({self.method} {self.path}{f'?{self.query}' if self.query else ''} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponse:
	"""An HTTP response."""

	@staticmethod
	def Create(
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		headers: dict[str, str] | None = None,
		status: int = 200,
		message: str | None = None,
		protocol: str = "HTTP/1.1",
	) -> "HTTPResponse":
		"""Factory method to create HTTP response objects."""
		payload: bytes | None = None
		body: THTTPBody | None = None
		if content is None:
			pass
		elif isinstance(content, str):
			payload = content.encode(DEFAULT_ENCODING)
		elif isinstance(content, bytes):
			payload = content
		elif isinstance(content, HTTPBodyFile):
			body = content
			contentLength = body.size
		elif isinstance(content, Path):
			body = HTTPBodyFile(content.absolute())
			contentLength = os.path.getsize(body.path)
		else:
			raise ValueError(f"Unsupported content {type(content)}:{content}")
		if payload is not None:
			contentLength = len(payload)
			body = HTTPBodyBlob(payload, contentLength)
		res_headers: dict[str, str] = {headername(k): v for k, v in (headers or {}).items()}
		if contentType is not None:
			res_headers["Content-Type"] = contentType
		if contentLength is not None:
			res_headers["Content-Length"] = str(contentLength)
		elif body is None and status >= 200 and status not in (204, 304):
			res_headers.setdefault("Content-Length", "0")
		return HTTPResponse(
			status=status,
			message=message or HTTP_STATUS.get(status, "Unknown status"),
			headers=HTTPHeaders(
				res_headers,
				contentType=res_headers.get("Content-Type"),
				contentLength=contentLength,
			),
			body=body,
			protocol=protocol,
		)

	__slots__ = [
		"protocol",
		"status",
		"message",
		"headers",
		"body",
	]

	def __init__(
		self,
		protocol: str,
		status: int,
		message: str | None,
		headers: HTTPHeaders,
		body: THTTPBody | None = None,
	):
		self.protocol: str = protocol
		self.status: int = status
		self.message: str | None = message
		self.headers: HTTPHeaders = headers
		self.body: THTTPBody | None = body

	def getHeader(self, name: str) -> str | None:
		return self.headers.headers.get(headername(name))

	def setHeader(self, name: str, value: str | int | None) -> "HTTPResponse":
		if value is None:
			self.headers.headers.pop(headername(name), None)
		else:
			self.headers.headers[headername(name)] = str(value)
		return self

	def withoutBody(self) -> "HTTPResponse":
		"""Drops the body while keeping the headers (including the
		`Content-Length`), which is what a `HEAD` response is."""
		self.body = None
		return self

	def head(self) -> bytes:
		"""Serializes the head as a payload."""
		message: str = self.message or HTTP_STATUS.get(self.status, "Unknown status")
		lines: list[str] = [
			f"{headername(k)}: {v}" for k, v in self.headers.headers.items()
		]
		lines.insert(0, f"{self.protocol} {self.status} {message}")
		lines.append("")
		lines.append("")
		# Non-ASCII header values (eg. file names) are sent as UTF-8
		return "\r\n".join(lines).encode(DEFAULT_ENCODING)

	def __str__(self) -> str:
		return f"Response({self.protocol} {self.status} {self.message} {self.headers} {self.body})"


# EOF
