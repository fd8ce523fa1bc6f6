"""
Project config discovery and parsing.

A project pins its tool in a `.toolsEnv` file:

    EXECUTABLE = BuildTools
    URL[arm64] = https://path/to/archive.zip
    CHECKSUM[arm64] = 12345
    URL[x86_64] = https://path/to/archive.zip
    CHECKSUM[x86_64] = 12345

Architecture-qualified keys take precedence over the plain ones. The
nearest file in the current directory or any of its parents wins.
"""

from __future__ import annotations

import platform
from pathlib import Path
from urllib.parse import urlparse

from toolsrunner.exceptions import (
    EnvConfigNotFoundError,
    EnvConfigUnreadableError,
    InvalidUrlError,
    RequiredValuesNotSpecifiedError,
    UnsupportedArchitectureError,
)
from toolsrunner.logging import get_logger
from toolsrunner.types import EnvironmentConfig, FetchSpec

logger = get_logger(__name__)

DEFAULT_FILENAME = ".toolsEnv"

_ARCHITECTURES = {
    "arm64": "arm64",
    "aarch64": "arm64",
    "x86_64": "x86_64",
    "amd64": "x86_64",
}


def current_architecture() -> str:
    """Architecture name used in config keys.

    Raises:
        UnsupportedArchitectureError: For machines other than arm64 / x86_64.
    """
    machine = platform.machine().lower()
    try:
        return _ARCHITECTURES[machine]
    except KeyError:
        raise UnsupportedArchitectureError(
            "Not supported architecture", context={"machine": machine}
        ) from None


def find_environment_config(start: Path, filename: str = DEFAULT_FILENAME) -> Path:
    """Find the nearest config file in `start` or its parents.

    Raises:
        EnvConfigNotFoundError: If no directory up to the root has one.
    """
    start = start.resolve()
    for directory in (start, *start.parents):
        candidate = directory / filename
        if candidate.is_file():
            return candidate

    raise EnvConfigNotFoundError(
        f"{filename} file not found.",
        context={"filename": filename, "start": str(start)},
    )


def read_raw_config(text: str) -> dict[str, str]:
    """Decode `KEY = value` lines; later keys override earlier ones."""
    raw: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        raw[key.strip()] = value.strip()
    return raw


def _read_config_text(path: Path) -> str:
    """Read the config file; content that is not UTF-8 reads as empty."""
    try:
        data = path.read_bytes()
    except OSError as e:
        raise EnvConfigUnreadableError(
            f"Cannot read {path.name} file.",
            context={"path": str(path), "reason": str(e)},
        ) from e

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Config file is not valid UTF-8", path=str(path))
        return ""


def parse_environment_config(
    path: Path,
    architecture: str | None = None,
) -> EnvironmentConfig:
    """Parse a project config file for one architecture.

    Args:
        path: The config file.
        architecture: Key qualifier; defaults to the host architecture.

    Returns:
        EnvironmentConfig keyed by the file's directory.

    Raises:
        EnvConfigUnreadableError: If the file cannot be read.
        RequiredValuesNotSpecifiedError: If required keys are missing.
        InvalidUrlError: If the URL cannot be used.
    """
    arch = architecture or current_architecture()
    raw = read_raw_config(_read_config_text(path))

    executable = raw.get("EXECUTABLE", "")
    url = raw.get(f"URL[{arch}]") or raw.get("URL", "")
    checksum = raw.get(f"CHECKSUM[{arch}]") or raw.get("CHECKSUM") or None

    fetch_spec = FetchSpec(url=url)

    missing: list[str] = []
    if not executable:
        missing.append("EXECUTABLE")
    if not url:
        missing.append("URL")
    if checksum is None and (not url or fetch_spec.requires_version_token):
        missing.append("CHECKSUM")
    if missing:
        raise RequiredValuesNotSpecifiedError(missing, filename=path.name)

    parsed = urlparse(url)
    if not parsed.scheme or (fetch_spec.is_local_file and not parsed.path):
        raise InvalidUrlError(url)
    if not fetch_spec.is_local_file and not parsed.netloc:
        raise InvalidUrlError(url)

    config = EnvironmentConfig(
        project_dir=path.parent.resolve(),
        executable=executable,
        fetch_spec=fetch_spec,
        version_token=checksum,
    )
    logger.debug(
        "Loaded environment config",
        path=str(path),
        architecture=arch,
        local=fetch_spec.is_local_file,
    )
    return config


def load_environment(
    start: Path,
    filename: str = DEFAULT_FILENAME,
    architecture: str | None = None,
) -> EnvironmentConfig:
    """Find and parse the project config that applies to `start`."""
    return parse_environment_config(find_environment_config(start, filename), architecture)
