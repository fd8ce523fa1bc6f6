"""
`tools` entry point.

Every argument is forwarded to the pinned tool untouched, so this entry
point does no option parsing of its own. Runner behaviour is controlled
through TOOLS_RUNNER_* environment variables instead.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import NoReturn, Sequence

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from toolsrunner.config import get_settings
from toolsrunner.environment import load_environment
from toolsrunner.exceptions import ToolsRunnerError
from toolsrunner.launcher import Launcher
from toolsrunner.logging import setup_logging

error_console = Console(stderr=True)


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Find the project config, resolve the tool and run it."""
    args = list(sys.argv[1:] if argv is None else argv)

    try:
        settings = get_settings()
    except ValidationError as e:
        error_console.print(f"[red]Error:[/red] Invalid runner settings:\n{escape(str(e))}")
        raise SystemExit(1) from None

    setup_logging(log_level=settings.LOG_LEVEL, log_file=settings.LOG_FILE)

    try:
        environment = load_environment(Path.cwd(), settings.ENV_FILENAME)
        Launcher.from_settings(settings).run(environment, args)
    except ToolsRunnerError as e:
        error_console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise SystemExit(1) from None


if __name__ == "__main__":
    main()
