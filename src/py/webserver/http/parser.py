from typing import Iterator, Literal
from urllib.parse import parse_qsl
from ..utils.io import LineParser
from .model import (
	HTTPRequest,
	HTTPRequestLine,
	HTTPHeaders,
	HTTPAtom,
	HTTPProcessingStatus,
	headername,
)

# Longest request or header line we accept before giving up on the client
MAX_LINE: int = 64 * 1024


class MessageParser:
	"""Parses an HTTP request line."""

	__slots__ = ["line", "value", "failed"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.value: HTTPRequestLine | None = None
		self.failed: bool = False

	def flush(self) -> HTTPRequestLine | None:
		res = self.value
		self.reset()
		return res

	def reset(self) -> "MessageParser":
		self.line.reset()
		self.value = None
		self.failed = False
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		line, read = self.line.feed(chunk, start)
		if line is None:
			if self.line.pending > MAX_LINE:
				self.failed = True
				return False, read
			return None, read
		elif not line:
			# RFC 9112 §2.2: empty lines before the request line are ignored
			return None, read
		try:
			ln = line.decode("ascii")
		except UnicodeDecodeError:
			self.failed = True
			return False, read
		chunks = ln.split(" ")
		if len(chunks) != 3 or not chunks[2].startswith("HTTP/") or not chunks[1]:
			self.failed = True
			return False, read
		method, target, protocol = chunks
		p: list[str] = target.split("?", 1)
		self.value = HTTPRequestLine(method, p[0], p[1] if len(p) > 1 else "", protocol)
		return True, read

	def __str__(self) -> str:
		return f"MessageParser({self.value})"


class HeadersParser:
	__slots__ = ["headers", "contentType", "contentLength", "line", "failed"]

	def __init__(self) -> None:
		self.line: LineParser = LineParser()
		self.headers: dict[str, str] = {}
		self.contentType: str | None = None
		self.contentLength: int | None = None
		self.failed: bool = False

	def flush(self) -> HTTPHeaders:
		res = HTTPHeaders(self.headers, self.contentType, self.contentLength)
		self.reset()
		return res

	def reset(self) -> "HeadersParser":
		self.line.reset()
		self.headers = {}
		self.contentType = None
		self.contentLength = None
		self.failed = False
		return self

	def feed(
		self, chunk: bytes, start: int = 0
	) -> tuple[str | Literal[False] | None, int]:
		"""Feeds data from chunk, starting at `start` offset. Returns
		a value and the number of bytes read. When the value is `None`, no
		header has been extracted, when the value is `False` it's the empty
		line ending the headers (or a failure, see `failed`), otherwise it's
		the name of the parsed header."""
		line, read = self.line.feed(chunk, start)
		if line is None:
			if self.line.pending > MAX_LINE:
				self.failed = True
				return False, read
			return None, read
		elif not line:
			# An empty line denotes the end of headers
			return False, read
		try:
			ln: str = line.decode("latin-1")
		except UnicodeDecodeError:
			self.failed = True
			return False, read
		i = ln.find(":")
		if i <= 0:
			self.failed = True
			return False, read
		h = ln[:i].lower().strip()
		v = ln[i + 1 :].strip()
		if h == "content-length":
			# Only plain digits, a sign would let the body offset go backwards
			if not (v.isascii() and v.isdigit()):
				self.failed = True
				return False, read
			self.contentLength = int(v)
		elif h == "content-type":
			self.contentType = v
		n: str = headername(h)
		self.headers[n] = v
		return n, read

	def __str__(self) -> str:
		return f"HeadersParser({self.headers})"


class BodySkipParser:
	"""Discards a request body of a known length. The file server never
	uses request bodies, but they need to be consumed to keep the connection
	in sync."""

	__slots__ = ["expected", "read"]

	def __init__(self) -> None:
		self.expected: int = 0
		self.read: int = 0

	def reset(self, length: int = 0) -> "BodySkipParser":
		self.expected = length
		self.read = 0
		return self

	def feed(self, chunk: bytes, start: int = 0) -> tuple[bool | None, int]:
		to_read: int = min(len(chunk) - start, self.expected - self.read)
		self.read += to_read
		return (True if self.read >= self.expected else None), to_read


class HTTPParser:
	"""A stateful, incremental HTTP request parser."""

	def __init__(self) -> None:
		self.message: MessageParser = MessageParser()
		self.headers: HeadersParser = HeadersParser()
		self.body: BodySkipParser = BodySkipParser()
		self.parser: MessageParser | HeadersParser | BodySkipParser = self.message
		self.requestLine: HTTPRequestLine | None = None
		self.requestHeaders: HTTPHeaders | None = None

	def request(self) -> HTTPRequest:
		line = self.requestLine
		headers = self.requestHeaders or HTTPHeaders({})
		assert line is not None  # nosec: B101
		self.parser = self.message.reset()
		return HTTPRequest(
			method=line.method,
			path=line.path,
			query=parseQuery(line.query),
			headers=headers,
			protocol=line.protocol,
		)

	def feed(self, chunk: bytes) -> Iterator[HTTPAtom]:
		"""Feeds the given chunk, yielding request lines, headers and
		complete requests as they become available. Once `BadFormat` is
		yielded the parser must be reset."""
		size: int = len(chunk)
		offset: int = 0
		while offset < size:
			# Partially read chunks are buffered by the underlying parser,
			# so they must not be fed again.
			ln, read = self.parser.feed(chunk, offset)
			offset += read
			if ln is None:
				continue
			elif self.parser is self.message:
				if self.message.failed:
					yield HTTPProcessingStatus.BadFormat
					return
				line = self.message.flush()
				if line is not None:
					self.requestLine = line
					self.requestHeaders = None
					yield line
					self.parser = self.headers
			elif self.parser is self.headers:
				if ln is not False:
					continue
				elif self.headers.failed:
					yield HTTPProcessingStatus.BadFormat
					return
				headers = self.headers.flush()
				self.requestHeaders = headers
				yield headers
				if headers.headers.get("Transfer-Encoding"):
					# Chunked request bodies are not supported
					yield HTTPProcessingStatus.BadFormat
					return
				elif headers.contentLength:
					# Whatever the method, a body is never read as a new request
					self.parser = self.body.reset(headers.contentLength)
					yield HTTPProcessingStatus.Body
				else:
					yield self.request()
			elif self.parser is self.body:
				yield self.request()
			else:
				raise RuntimeError(f"Unsupported parser: {self.parser}")


def parseQuery(text: str) -> dict[str, str]:
	return dict(parse_qsl(text, keep_blank_values=True)) if text else {}


# EOF
