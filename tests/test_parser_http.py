from webserver.http.model import (
	HEADERNAME_CACHE,
	HTTPProcessingStatus,
	HTTPRequest,
	headername,
)
from webserver.http.parser import HTTPParser, parseQuery


def requests(parser: HTTPParser, *chunks: bytes) -> list[HTTPRequest]:
	return [
		_ for chunk in chunks for _ in parser.feed(chunk) if isinstance(_, HTTPRequest)
	]


def test_parse_split_request():
	parser = HTTPParser()
	res = requests(
		parser,
		b"GET /time/5 ",
		b"HTTP/1.1\r\nHost: ",
		b"127.0.0.1\r",
		b"\nConn",
		b"ection: close\r\n",
		b"\r",
		b"\n",
	)
	assert len(res) == 1
	req = res[0]
	assert req.method == "GET"
	assert req.path == "/time/5"
	assert req.protocol == "HTTP/1.1"
	assert req.header("host") == "127.0.0.1"
	assert req.header("Connection") == "close"
	assert not req.keepAlive


def test_parse_pipelined_requests():
	parser = HTTPParser()
	res = requests(
		parser,
		b"GET /a.txt?x=1&y HTTP/1.1\r\nHost: a\r\n\r\n"
		b"HEAD /b.txt HTTP/1.1\r\nHost: a\r\n\r\n",
	)
	assert [(_.method, _.path) for _ in res] == [("GET", "/a.txt"), ("HEAD", "/b.txt")]
	assert res[0].query == {"x": "1", "y": ""}
	assert res[1].keepAlive


def test_parse_skips_request_body():
	parser = HTTPParser()
	res = requests(
		parser,
		b"POST /upload HTTP/1.1\r\nContent-Length: 5\r\n\r\nhel",
		b"loGET / HTTP/1.0\r\n\r\n",
	)
	assert [(_.method, _.path) for _ in res] == [("POST", "/upload"), ("GET", "/")]
	assert not res[1].keepAlive


def test_parse_bad_request_line():
	parser = HTTPParser()
	atoms = list(parser.feed(b"NOT A VALID REQUEST\r\n\r\n"))
	assert atoms == [HTTPProcessingStatus.BadFormat]


def test_parse_bad_header():
	parser = HTTPParser()
	atoms = list(parser.feed(b"GET / HTTP/1.1\r\nNoColon\r\n\r\n"))
	assert atoms[-1] is HTTPProcessingStatus.BadFormat


def test_parse_query():
	assert parseQuery("") == {}
	assert parseQuery("a=1&b=%20x") == {"a": "1", "b": " x"}


def test_get_body_is_not_a_request():
	parser = HTTPParser()
	smuggled = b"GET /smuggled HTTP/1.1\r\n\r\n"
	res = requests(
		parser,
		b"GET /a HTTP/1.1\r\nContent-Length: %d\r\n\r\n" % len(smuggled) + smuggled,
		b"HEAD /b HTTP/1.1\r\n\r\n",
	)
	assert [_.path for _ in res] == ["/a", "/b"]


def test_negative_content_length():
	parser = HTTPParser()
	atoms = list(
		parser.feed(
			b"POST /a HTTP/1.1\r\nContent-Length: -4\r\n\r\nGET /b HTTP/1.1\r\n\r\n"
		)
	)
	assert atoms[-1] is HTTPProcessingStatus.BadFormat
	assert not [_ for _ in atoms if isinstance(_, HTTPRequest)]


def test_signed_content_length():
	parser = HTTPParser()
	atoms = list(parser.feed(b"POST /a HTTP/1.1\r\nContent-Length: +4\r\n\r\nabcd"))
	assert atoms[-1] is HTTPProcessingStatus.BadFormat


def test_header_names_cache_is_bounded():
	parser = HTTPParser()
	for i in range(HEADERNAME_CACHE * 4):
		requests(parser, b"GET / HTTP/1.1\r\nX-Junk-%d: 1\r\n\r\n" % i)
	assert headername.cache_info().currsize <= HEADERNAME_CACHE
	assert headername("x-junk-1") == "X-Junk-1"


# EOF
