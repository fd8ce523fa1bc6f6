"""
Pytest configuration and fixtures for tools runner tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator, NoReturn, Sequence
from unittest.mock import patch

import pytest

from toolsrunner.cache import CachePolicy, CacheStore
from toolsrunner.config import Settings, clear_settings_cache
from toolsrunner.launcher import Launcher
from toolsrunner.types import FetchSpec


class FakeClock:
    """Controllable clock for cache timestamps."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class RecordingTransport:
    """Transport that writes a fake tool binary instead of fetching."""

    calls: list[tuple[FetchSpec, Path, str | None]] = field(default_factory=list)
    error: Exception | None = None

    def populate(
        self,
        fetch_spec: FetchSpec,
        destination: Path,
        version_token: str | None = None,
    ) -> None:
        self.calls.append((fetch_spec, destination, version_token))
        if self.error is not None:
            raise self.error
        (destination / "tool").write_text(f"#!/bin/sh\n# {fetch_spec.url} {version_token}\n")


@dataclass
class RecordingExecutor:
    """Executor that records the call and exits with status 0."""

    calls: list[tuple[Path, list[str], dict[str, str] | None]] = field(default_factory=list)

    def exec(
        self,
        binary_path: Path,
        args: Sequence[str],
        extra_env: dict[str, str] | None = None,
    ) -> NoReturn:
        self.calls.append((binary_path, list(args), extra_env))
        raise SystemExit(0)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock fixed at a known instant."""
    return FakeClock(datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def backdate(clock: FakeClock) -> Callable[..., None]:
    """Provide a helper that sets a path's mtime relative to the clock."""

    def _backdate(path: Path, **kwargs: float) -> None:
        stamp = (clock.now - timedelta(**kwargs)).timestamp()
        os.utime(path, (stamp, stamp))

    return _backdate


@pytest.fixture
def store(temp_dir: Path, clock: FakeClock) -> CacheStore:
    """Provide a cache store rooted in the temp directory."""
    return CacheStore(temp_dir / "state", clock=clock)


@pytest.fixture
def policy(store: CacheStore) -> CachePolicy:
    """Provide a cache policy with a 30 day retention window."""
    return CachePolicy(store, retention=timedelta(days=30))


@pytest.fixture
def transport() -> RecordingTransport:
    """Provide a recording transport."""
    return RecordingTransport()


@pytest.fixture
def executor() -> RecordingExecutor:
    """Provide a recording executor."""
    return RecordingExecutor()


@pytest.fixture
def launcher(
    store: CacheStore,
    policy: CachePolicy,
    transport: RecordingTransport,
    executor: RecordingExecutor,
) -> Launcher:
    """Provide a launcher wired to the recording collaborators."""
    return Launcher(store=store, policy=policy, transport=transport, executor=executor)


@pytest.fixture
def write_env(temp_dir: Path) -> Callable[..., Path]:
    """Provide a helper that writes a .toolsEnv file into a project directory."""

    def _write(text: str, project: str = "project", filename: str = ".toolsEnv") -> Path:
        project_dir = temp_dir / project
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / filename
        path.write_text(text)
        return path

    return _write


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide runner environment variables pointing into the temp directory."""
    env_vars = {
        "TOOLS_RUNNER_HOME_DIR": str(temp_dir / "home"),
        "TOOLS_RUNNER_RETENTION_DAYS": "7",
        "TOOLS_RUNNER_LOG_LEVEL": "DEBUG",
        "TOOLS_RUNNER_UNZIP_PATH": "/usr/bin/unzip",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance built from mock_env_vars."""
    from toolsrunner.config import get_settings

    clear_settings_cache()
    yield get_settings()
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
