from __future__ import annotations

import argparse
import logging

import uvicorn

from guestbook.internal_core.config import load_config
from guestbook.internal_core.logging_setup import configure_logging

logger = logging.getLogger("guestbook")


def main() -> None:
    config = load_config()
    parser = argparse.ArgumentParser(description="Run the guestbook API server.")
    parser.add_argument("--host", default=config.HOST)
    parser.add_argument("--port", type=int, default=config.PORT)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes (development).")
    args = parser.parse_args()

    configure_logging(config.LOG_LEVEL)
    logger.info("listening on http://%s:%s", args.host, args.port)
    uvicorn.run(
        "guestbook.api.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.LOG_LEVEL.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
