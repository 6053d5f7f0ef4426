import argparse

import uvicorn

from familytree.config import settings
from familytree.utils.logging_utils import setup_logging


def main():
    """Run the API server."""
    parser = argparse.ArgumentParser(description="Family Tree API server")
    parser.add_argument("--host", default=settings.HOST, help="host to bind")
    parser.add_argument("--port", "-p", type=int, default=settings.PORT, help="port to bind")
    parser.add_argument("--reload", action="store_true", help="enable auto-reload")
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL)

    uvicorn.run(
        "familytree.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
