import os
from os import getenv
from typing import Mapping

DEFAULT_PORT: str = "8080"


def port(env: Mapping[str, str] = os.environ) -> str:
	"""Returns the port to listen on, as given by `WEB_PORT`, defaulting
	to `DEFAULT_PORT` when unset or empty."""
	return env.get("WEB_PORT") or DEFAULT_PORT


PORT: str = port()

# The server is meant to be reachable from outside a container
HOST: str = getenv("WEB_HOST", "0.0.0.0")  # nosec: B104

# Relative to the working directory at launch
ROOT: str = getenv("WEB_ROOT") or "./web"

LOG_REQUESTS: bool = getenv("WEB_LOG_REQUESTS", "1") == "1"

# EOF
