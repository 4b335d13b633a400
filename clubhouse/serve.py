"""Run the Clubhouse API under uvicorn."""

import argparse
import os
from typing import Optional, Sequence

import uvicorn

APP_PATH = "clubhouse.main:app"


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the Clubhouse meetings API.")
    parser.add_argument("--host", default=os.getenv("CLUBHOUSE_HOST", "127.0.0.1"))
    parser.add_argument(
        "--port", type=int, default=int(os.getenv("CLUBHOUSE_PORT", "8000"))
    )
    parser.add_argument("--reload", action="store_true", help="Restart on code changes.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    # setup_logging() runs in the app lifespan; keep uvicorn from replacing it.
    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
