"""
Run the Craftmatch API under uvicorn.

    craftmatch-api                      # durable store from CRAFTMATCH_STORE_URL
    craftmatch-api --in-memory          # no Qdrant server, state lost on exit
    craftmatch-api --port 9000 --log-level debug

Development with reload:
    uvicorn craftmatch.api.app:create_app --factory --reload
"""

from __future__ import annotations

import argparse
import os

import uvicorn

from craftmatch.api.app import create_app
from craftmatch.config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="craftmatch-api",
        description="Serve seeker recommendations and learn from bookings.",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="skip the durable store and start in degraded (in-process) mode",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="uvicorn log level",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging()

    # One process only: the agent's buffer and policy live in this process.
    uvicorn.run(
        create_app(use_store=not args.in_memory),
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        workers=1,
    )


if __name__ == "__main__":
    main()
