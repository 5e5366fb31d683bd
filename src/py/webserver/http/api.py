from abc import ABC, abstractmethod
from email.utils import formatdate
from pathlib import Path
from typing import Any, Generic, Iterator, TypeVar

from ..utils.files import contentType as getContentType
from .status import HTTP_STATUS

T = TypeVar("T")

# -----------------------------------------------------------------------------
#
# API
#
# -----------------------------------------------------------------------------

# --
# == HTTP Request Response API
#
# Defines the high level API functions (orthogonal to the underlying model)
# to create responses from a request.


class ResponseFactory(ABC, Generic[T]):
	__slots__ = ()

	@abstractmethod
	def respond(
		self,
		content: Any = None,
		contentType: str | None = None,
		contentLength: int | None = None,
		status: int = 200,
		headers: dict[str, str] | None = None,
		message: str | None = None,
	) -> T: ...

	def error(
		self,
		status: int,
		content: str | None = None,
		contentType: str = "text/plain; charset=utf-8",
		headers: dict[str, str] | None = None,
	) -> T:
		message = HTTP_STATUS.get(status, "Server Error")
		return self.respond(
			content=message if content is None else content,
			contentType=contentType,
			status=status,
			headers=headers,
		)

	def forbidden(self, content: str | None = None) -> T:
		return self.error(403, content)

	def notFound(self, content: str | None = None) -> T:
		return self.error(404, content)

	def notAllowed(self, allowed: list[str]) -> T:
		return self.error(405, headers={"Allow": ", ".join(allowed)})

	def notModified(self, headers: dict[str, str] | None = None) -> T:
		return self.respondEmpty(304, headers)

	def fail(self, content: str | None = None, *, status: int = 500) -> T:
		return self.error(status, content)

	def redirect(self, url: str, permanent: bool = False) -> T:
		# SEE: https://developer.mozilla.org/en-US/docs/Web/HTTP/Redirections
		return self.respondEmpty(
			status=301 if permanent else 302, headers={"Location": str(url)}
		)

	def respondHTML(
		self, html: str | bytes | Iterator[str], status: int = 200
	) -> T:
		return self.respond(
			content=html if isinstance(html, (str, bytes)) else "".join(html),
			contentType="text/html; charset=utf-8",
			status=status,
		)

	def respondFile(
		self,
		path: Path | str,
		headers: dict[str, str] | None = None,
		status: int = 200,
		contentType: str | None = None,
	) -> T:
		"""Responds with the whole file at the given path, advertising its
		type, size and modification time."""
		p: Path = path if isinstance(path, Path) else Path(path)
		stat = p.stat()
		base_headers = {
			"Content-Type": contentType or getContentType(p),
			"Last-Modified": formatdate(stat.st_mtime, usegmt=True),
			"Accept-Ranges": "bytes",
		}
		return self.respond(
			content=p,
			status=status,
			headers=base_headers | headers if headers else base_headers,
		)

	def respondEmpty(self, status: int, headers: dict[str, str] | None = None) -> T:
		return self.respond(content=None, status=status, headers=headers)


# EOF
