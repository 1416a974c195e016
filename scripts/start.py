#!/usr/bin/env python3
"""
Container entrypoint: release phase, then gunicorn in place of this process.

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080


def resolve_port(raw: str | None) -> int:
    """PORT from the platform; unset means DEFAULT_PORT, anything else must be 1-65535."""
    raw = (raw or "").strip()
    if not raw:
        return DEFAULT_PORT
    port = int(raw)
    if not 1 <= port <= 65535:
        raise ValueError(f"PORT {port} is outside 1-65535")
    return port


def gunicorn_command(port: int, workers: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", "60",
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        port = resolve_port(os.environ.get("PORT"))
        workers = int((os.environ.get("WEB_CONCURRENCY") or "2").strip())
    except ValueError as e:
        print(f"eventdesk: bad PORT/WEB_CONCURRENCY: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"eventdesk: release phase failed, not starting: {e}", flush=True)
        sys.exit(1)

    cmd = gunicorn_command(port, workers)
    print(f"eventdesk: exec {' '.join(cmd)}", flush=True)
    # gunicorn becomes PID 1 and receives signals directly
    os.execvp(cmd[0], cmd)


if __name__ == "__main__":
    main()
