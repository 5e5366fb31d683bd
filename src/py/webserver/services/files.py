import os
from datetime import datetime
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import ClassVar, NamedTuple
from urllib.parse import quote, unquote

from ..http.model import HTTPBodyFile, HTTPRequest, HTTPResponse
from ..utils.files import contentType
from ..utils.htmpl import H, Node, html
from ..utils.logging import exception

INDEX: str = "index.html"


class ByteRange(NamedTuple):
	start: int
	length: int


def parseRange(value: str | None, size: int) -> ByteRange | None | bool:
	"""Parses a `Range` header against a file of the given size. Returns
	`None` when the header is absent, malformed or asks for more than one
	range (the whole file is then served), `False` when the range cannot
	be satisfied, and the `ByteRange` otherwise."""
	if not value or not value.startswith("bytes="):
		return None
	spec: str = value[6:].strip()
	if "," in spec or "-" not in spec:
		return None
	first, last = (_.strip() for _ in spec.split("-", 1))
	try:
		if not first:
			# Suffix range, the last N bytes
			n = int(last)
			if n <= 0:
				return False
			n = min(n, size)
			return ByteRange(size - n, n) if size else False
		start = int(first)
		end = int(last) if last else size - 1
	except ValueError:
		return None
	if start < 0 or end < start:
		return None
	elif start >= size:
		return False
	else:
		return ByteRange(start, min(end, size - 1) - start + 1)


class FileService:
	"""Serves the files under a document root for every request path.
	Only `GET` and `HEAD` are supported."""

	METHODS: ClassVar[list[str]] = ["GET", "HEAD"]

	def __init__(self, root: str | Path = "."):
		self.root: Path = (root if isinstance(root, Path) else Path(root)).absolute()

	def process(self, request: HTTPRequest) -> HTTPResponse:
		if request.method not in self.METHODS:
			return request.notAllowed(self.METHODS)
		res = self.read(request)
		return res.withoutBody() if request.method == "HEAD" else res

	def read(self, request: HTTPRequest) -> HTTPResponse:
		path: str = request.path
		local_path = self.resolvePath(path)
		if local_path is None:
			return request.notFound()
		try:
			if local_path.is_dir():
				if not path.endswith("/"):
					# Relative, so that the target is always on this host
					name: str = path.rsplit("/", 1)[-1]
					return request.redirect(
						self.location(request, f"./{name}/"), permanent=True
					)
				index_path = local_path / INDEX
				if not index_path.is_file():
					return self.renderDir(request, path, local_path)
				local_path = index_path
			elif not local_path.is_file():
				return request.notFound()
			elif path.endswith(f"/{INDEX}"):
				# Index files are only reachable through their directory
				return request.redirect(
					self.location(request, "./"), permanent=True
				)
			return self.renderFile(request, local_path)
		except (FileNotFoundError, NotADirectoryError):
			return request.notFound()
		except PermissionError:
			return request.forbidden()
		except OSError as e:
			exception(e, f"Could not read {path}")
			return request.fail()

	def location(self, request: HTTPRequest, path: str) -> str:
		query: str = "&".join(
			f"{quote(k)}={quote(v)}" for k, v in (request.query or {}).items()
		)
		return f"{path}?{query}" if query else path

	def renderFile(self, request: HTTPRequest, localPath: Path) -> HTTPResponse:
		stat = localPath.stat()
		# Fails early with a `PermissionError`, before any header is sent
		with open(localPath, "rb"):
			pass
		last_modified: str = formatdate(stat.st_mtime, usegmt=True)
		if self.isNotModified(request, stat.st_mtime):
			return request.notModified({"Last-Modified": last_modified})
		byte_range = parseRange(request.header("Range"), stat.st_size)
		if byte_range is False:
			return request.error(
				416, headers={"Content-Range": f"bytes */{stat.st_size}"}
			)
		elif isinstance(byte_range, ByteRange):
			start, length = byte_range
			return request.respond(
				HTTPBodyFile(localPath.absolute(), start, length),
				status=206,
				headers={
					"Content-Type": contentType(localPath),
					"Content-Range": f"bytes {start}-{start + length - 1}/{stat.st_size}",
					"Last-Modified": last_modified,
					"Accept-Ranges": "bytes",
				},
			)
		else:
			return request.respondFile(localPath)

	def isNotModified(self, request: HTTPRequest, mtime: float) -> bool:
		value: str | None = request.header("If-Modified-Since")
		if not value or request.header("Range"):
			return False
		try:
			since: datetime = parsedate_to_datetime(value)
		except (TypeError, ValueError):
			return False
		if since.tzinfo is None:
			return False
		# HTTP dates have a one second resolution
		return int(mtime) <= since.timestamp()

	def renderDir(
		self, request: HTTPRequest, path: str, localPath: Path
	) -> HTTPResponse:
		title: str = f"Index of {unquote(path)}"
		items: list[Node] = []
		if path != "/":
			items.append(H.li(H.a("../", href="../")))
		for p in sorted(localPath.iterdir(), key=lambda _: _.name):
			name: str = f"{p.name}/" if p.is_dir() else p.name
			items.append(H.li(H.a(name, href=quote(name))))
		return request.respondHTML(
			html(
				H.html(
					H.head(H.meta(charset="utf-8"), H.title(title)),
					H.body(H.h1(title), H.ul(items)),
				),
				doctype="html",
			)
		)

	def resolvePath(self, path: str) -> Path | None:
		"""Maps the URL path to a local path under the root, returning `None`
		when it would escape the root, either through `..` segments or
		through a symbolic link."""
		parts: list[str] = []
		for segment in unquote(path).split("/"):
			if not segment or segment == ".":
				continue
			elif segment == "..":
				if not parts:
					return None
				parts.pop()
			elif "\x00" in segment or os.sep in segment or (
				os.altsep and os.altsep in segment
			):
				return None
			else:
				parts.append(segment)
		local_path = self.root.joinpath(*parts)
		real_root: str = os.path.realpath(self.root)
		real_path: str = os.path.realpath(local_path)
		if real_path != real_root and not real_path.startswith(
			real_root.rstrip(os.sep) + os.sep
		):
			return None
		return local_path


# EOF
