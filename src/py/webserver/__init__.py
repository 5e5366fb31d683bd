from .http.model import (
    HTTPRequest,
    HTTPResponse,
)  # NOQA: F401
from .server import run, ServerBindError  # NOQA: F401
from .services.files import FileService  # NOQA: F401

# EOF
