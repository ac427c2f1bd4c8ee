#!/usr/bin/env python3
"""Start the route synthesis API with uvicorn, honouring the PORT environment variable."""

import os
import sys

import uvicorn

DEFAULT_PORT = 8000


def resolve_port(value: str | None) -> int:
    if not value:
        return DEFAULT_PORT
    try:
        return int(value)
    except ValueError:
        print(f"Warning: Invalid PORT value '{value}', using default {DEFAULT_PORT}", file=sys.stderr)
        return DEFAULT_PORT


def main() -> None:
    port = resolve_port(os.environ.get("PORT"))
    print(f"Starting route synthesis API on port {port}...", file=sys.stderr)
    uvicorn.run(
        "gtfs_synth.main:app",
        host="0.0.0.0",
        port=port,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
