#!/usr/bin/env python3
"""Install replyqueue with its dev extra and run the pytest suite.

Extra arguments are handed to pytest, e.g. ``scripts/test.py -k oracle``.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def run(command: list[str], env: dict[str, str] | None = None) -> None:
    print(f"+ {' '.join(command)}", flush=True)
    subprocess.run(command, check=True, cwd=ROOT, env=env)


def main(argv: list[str] | None = None) -> int:
    pytest_args = list(sys.argv[1:] if argv is None else argv)
    env = dict(os.environ)
    env.setdefault("REPLYQUEUE_LOG_TO_FILE", "off")

    print(f"Python interpreter: {sys.executable}", flush=True)
    try:
        run([sys.executable, "-m", "pip", "install", "-e", ".[dev]"])
        run([sys.executable, "-m", "pytest", "-q", *pytest_args], env=env)
    except subprocess.CalledProcessError as exc:
        return exc.returncode or 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
