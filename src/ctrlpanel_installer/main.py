"""Entry point for the ctrlpanel-installer CLI."""

from __future__ import annotations

import signal
import sys

from .cli import run_cli


def _exit_on_sigterm(signum, frame) -> None:
    # SystemExit unwinds the stack, so temporary credential files are removed
    raise SystemExit(128 + signum)


def app_main() -> None:
    signal.signal(signal.SIGTERM, _exit_on_sigterm)
    exit_code = run_cli()
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    app_main()
