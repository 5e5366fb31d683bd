"""
Static File Server Example

Serves the directory given as first argument (or the current directory)
on the port given by `WEB_PORT`.

Usage:
    python fileserver.py [DIRECTORY]
"""

import sys
from webserver import FileService, run
from webserver.config import PORT
from webserver.utils.logging import info

if __name__ == "__main__":
	root: str = sys.argv[1] if len(sys.argv) > 1 else "."
	info(f"Serving files from {root} on http://localhost:{PORT}", icon="📂")
	run(FileService(root), port=PORT)

# EOF
