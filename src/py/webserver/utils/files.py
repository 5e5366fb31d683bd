import mimetypes
from pathlib import Path

mimetypes.init()

# Overrides for extensions the platform database gets wrong or lacks
MIME_TYPES: dict[str, str] = {
	"js": "text/javascript",
	"mjs": "text/javascript",
	"wasm": "application/wasm",
	"webmanifest": "application/manifest+json",
	"bz2": "application/x-bzip",
	"gz": "application/x-gzip",
}

DEFAULT_CONTENT_TYPE: str = "application/octet-stream"


def isText(path: Path | str, size: int = 1024) -> bool:
	"""Check if a file is likely a text file by examining its content."""
	try:
		with open(path, "rb") as f:
			s = f.read(size)
	except OSError:
		return False
	if b"\x00" in s:
		return False
	try:
		s.decode("utf-8")
		return True
	except UnicodeDecodeError:
		return False


def contentType(path: Path | str, *, sniff: bool = True) -> str:
	"""Guesses the content type from the given path's extension. Files
	without a known extension are sniffed for text content."""
	name = Path(path).name
	ext: str = name.rsplit(".", 1)[-1].lower() if "." in name else ""
	res: str | None = MIME_TYPES.get(ext) or mimetypes.guess_type(name)[0]
	if res is None:
		res = "text/plain" if sniff and isText(path) else DEFAULT_CONTENT_TYPE
	return f"{res}; charset=utf-8" if res.startswith("text/") else res


# EOF
