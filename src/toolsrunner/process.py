"""Run the resolved tool binary in place of the launcher."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Mapping, NoReturn, Sequence

from toolsrunner.exceptions import ExecutableNotFoundError, ExecutionError
from toolsrunner.logging import get_logger, log_context

logger = get_logger(__name__)


def exit_status(returncode: int) -> int:
    """Map a subprocess return code to a shell-style exit status."""
    if returncode < 0:
        return 128 - returncode
    return returncode


class ProcessExecutor:
    """Runs a binary with the launcher's standard streams.

    The child inherits stdin, stdout and stderr. The launcher waits for it
    and exits with the child's status, so control never returns normally.
    """

    def exec(
        self,
        binary_path: Path,
        args: Sequence[str],
        extra_env: Mapping[str, str] | None = None,
    ) -> NoReturn:
        """Run the binary and exit with its status.

        Args:
            binary_path: Executable inside a cache slot.
            args: Arguments forwarded verbatim.
            extra_env: Variables added to the inherited environment.

        Raises:
            ExecutableNotFoundError: If the binary does not exist.
            ExecutionError: If the binary cannot be started.
            SystemExit: Always, carrying the child's exit status.
        """
        if not binary_path.exists():
            raise ExecutableNotFoundError(binary_path.name)

        env = {**os.environ, **(extra_env or {})}

        with log_context(phase="exec"):
            logger.debug("Running tool", binary=str(binary_path), args=len(args))
            try:
                process = subprocess.Popen([str(binary_path), *args], env=env)
            except OSError as e:
                raise ExecutionError(
                    f"Cannot run {binary_path.name}: {e.strerror or e}",
                    context={"binary": str(binary_path), "reason": str(e)},
                ) from e

            with process:
                while True:
                    try:
                        returncode = process.wait()
                        break
                    except KeyboardInterrupt:
                        # The child shares the terminal and decides how to exit.
                        continue

        raise SystemExit(exit_status(returncode))
