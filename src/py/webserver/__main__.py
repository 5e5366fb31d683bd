from pathlib import Path
from .config import HOST, PORT, ROOT
from .server import run
from .services.files import FileService
from .utils.logging import info, warning


def main() -> None:
	info(f"Web Server starting on http://localhost:{PORT}", icon="🌐")
	info(f"Serving files from {ROOT} directory", icon="📂")
	info(f"Access the interface at: http://localhost:{PORT}", icon="🚀")
	if not Path(ROOT).is_dir():
		warning("Document root does not exist, all paths will be not found", Root=ROOT)
	run(FileService(ROOT), host=HOST, port=PORT)


if __name__ == "__main__":
	main()

# EOF
