import io
from pathlib import Path
from unittest import mock

from webserver.utils.files import contentType
from webserver.utils.htmpl import H, html
from webserver.utils.logging import error, event


def test_content_type_from_extension(tmp_path: Path):
	assert contentType("index.html") == "text/html; charset=utf-8"
	assert contentType("app.mjs") == "text/javascript; charset=utf-8"
	assert contentType("image.PNG") == "image/png"
	assert contentType("module.wasm") == "application/wasm"


def test_content_type_sniffing(tmp_path: Path):
	text = tmp_path / "README"
	text.write_text("plain text")
	binary = tmp_path / "blob"
	binary.write_bytes(b"\x00\x01\x02")
	assert contentType(text) == "text/plain; charset=utf-8"
	assert contentType(binary) == "application/octet-stream"


def test_html_escapes():
	doc = "".join(html(H.ul(H.li(H.a("<b>", href='x"y'))), doctype="html"))
	assert doc == '<!DOCTYPE html>\n<ul><li><a href="x&quot;y">&lt;b&gt;</a></li></ul>'


def test_logging_writes_to_stderr():
	stream = io.StringIO()
	with mock.patch("webserver.utils.logging.sys.stderr", stream):
		event("GET", "/index.html")
		error("Unable to bind", "HOSTPORTERR")
	out = stream.getvalue()
	assert "GET" in out and "/index.html" in out
	assert "Unable to bind" in out and "HOSTPORTERR" in out


# EOF
