"""
Tests for project config discovery and parsing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from toolsrunner.environment import (
    current_architecture,
    find_environment_config,
    load_environment,
    parse_environment_config,
    read_raw_config,
)
from toolsrunner.exceptions import (
    EnvConfigNotFoundError,
    EnvConfigUnreadableError,
    InvalidUrlError,
    RequiredValuesNotSpecifiedError,
    UnsupportedArchitectureError,
)

EXAMPLE = """\
EXECUTABLE = BuildTools
URL[arm64] = https://example.com/arm.zip
CHECKSUM[arm64] = 111
URL[x86_64] = https://example.com/x86.zip
CHECKSUM[x86_64] = 222
"""


class TestReadRawConfig:
    """Tests for KEY = value decoding."""

    def test_splits_on_first_equals(self) -> None:
        """Test that values may contain '='."""
        raw = read_raw_config("URL = https://example.com/a.zip?x=1\n")
        assert raw == {"URL": "https://example.com/a.zip?x=1"}

    def test_ignores_lines_without_equals(self) -> None:
        """Test that other lines are skipped."""
        raw = read_raw_config("just text\n\nEXECUTABLE=tool\n")
        assert raw == {"EXECUTABLE": "tool"}

    def test_later_keys_win(self) -> None:
        """Test duplicate keys."""
        raw = read_raw_config("CHECKSUM = a\nCHECKSUM = b\n")
        assert raw["CHECKSUM"] == "b"


class TestParseEnvironmentConfig:
    """Tests for parse_environment_config."""

    def test_architecture_specific_values(self, write_env: Callable[..., Path]) -> None:
        """Test that arch-qualified keys are selected."""
        path = write_env(EXAMPLE)

        arm = parse_environment_config(path, "arm64")
        x86 = parse_environment_config(path, "x86_64")

        assert arm.executable == "BuildTools"
        assert arm.fetch_spec.url == "https://example.com/arm.zip"
        assert arm.version_token == "111"
        assert x86.fetch_spec.url == "https://example.com/x86.zip"
        assert x86.version_token == "222"

    def test_plain_keys_are_fallback(self, write_env: Callable[..., Path]) -> None:
        """Test unqualified URL and CHECKSUM."""
        path = write_env(
            "EXECUTABLE = tool\nURL = https://example.com/any.zip\nCHECKSUM = abc\n"
        )

        config = parse_environment_config(path, "arm64")

        assert config.fetch_spec.url == "https://example.com/any.zip"
        assert config.version_token == "abc"

    def test_project_dir_is_config_directory(self, write_env: Callable[..., Path]) -> None:
        """Test that the project key is the resolved config directory."""
        path = write_env(EXAMPLE)

        config = parse_environment_config(path, "arm64")

        assert config.project_dir == path.parent.resolve()
        assert config.project_key == str(path.parent.resolve())

    def test_missing_values_are_listed(self, write_env: Callable[..., Path]) -> None:
        """Test that every missing key is reported."""
        path = write_env("OTHER = 1\n")

        with pytest.raises(RequiredValuesNotSpecifiedError) as exc_info:
            parse_environment_config(path, "arm64")

        assert exc_info.value.keys == ["EXECUTABLE", "URL", "CHECKSUM"]
        assert "EXECUTABLE, URL, CHECKSUM" in str(exc_info.value)

    def test_remote_requires_checksum(self, write_env: Callable[..., Path]) -> None:
        """Test that remote archives must declare a checksum."""
        path = write_env("EXECUTABLE = tool\nURL = https://example.com/a.zip\nCHECKSUM =\n")

        with pytest.raises(RequiredValuesNotSpecifiedError) as exc_info:
            parse_environment_config(path, "arm64")

        assert exc_info.value.keys == ["CHECKSUM"]

    def test_local_archive_without_checksum(self, write_env: Callable[..., Path]) -> None:
        """Test that file:// archives need no checksum."""
        path = write_env("EXECUTABLE = tool\nURL = file:///opt/tool.zip\n")

        config = parse_environment_config(path, "arm64")

        assert config.fetch_spec.is_local_file
        assert config.version_token is None

    def test_undecodable_file_reads_as_empty(self, write_env: Callable[..., Path]) -> None:
        """Test that non-UTF-8 content reports every key as missing."""
        path = write_env("")
        path.write_bytes(b"EXECUTABLE = \xff\xfe tool\n")

        with pytest.raises(RequiredValuesNotSpecifiedError) as exc_info:
            parse_environment_config(path, "arm64")

        assert exc_info.value.keys == ["EXECUTABLE", "URL", "CHECKSUM"]

    def test_unreadable_file(self, temp_dir: Path) -> None:
        """Test that a read failure is a configuration error."""
        path = temp_dir / ".toolsEnv"
        path.mkdir()

        with pytest.raises(EnvConfigUnreadableError) as exc_info:
            parse_environment_config(path, "arm64")

        assert exc_info.value.context["path"] == str(path)

    def test_url_without_scheme_is_invalid(self, write_env: Callable[..., Path]) -> None:
        """Test that a bare path is not a URL."""
        path = write_env("EXECUTABLE = tool\nURL = example.com/a.zip\nCHECKSUM = 1\n")

        with pytest.raises(InvalidUrlError):
            parse_environment_config(path, "arm64")

    def test_remote_url_without_host_is_invalid(self, write_env: Callable[..., Path]) -> None:
        """Test that an http URL needs a host."""
        path = write_env("EXECUTABLE = tool\nURL = https:///a.zip\nCHECKSUM = 1\n")

        with pytest.raises(InvalidUrlError):
            parse_environment_config(path, "arm64")


class TestFindEnvironmentConfig:
    """Tests for config discovery."""

    def test_finds_in_parent(self, write_env: Callable[..., Path], temp_dir: Path) -> None:
        """Test that the search walks up from a nested directory."""
        path = write_env(EXAMPLE)
        nested = path.parent / "a" / "b"
        nested.mkdir(parents=True)

        assert find_environment_config(nested) == path.resolve()

    def test_nearest_wins(self, write_env: Callable[..., Path]) -> None:
        """Test that a nested config shadows the outer one."""
        outer = write_env(EXAMPLE, project="outer")
        inner = write_env(EXAMPLE, project="outer/inner")

        assert find_environment_config(inner.parent) == inner.resolve()
        assert find_environment_config(outer.parent) == outer.resolve()

    def test_directory_named_like_config_is_skipped(
        self, write_env: Callable[..., Path], temp_dir: Path
    ) -> None:
        """Test that only regular files count."""
        path = write_env(EXAMPLE, project="outer")
        inner = path.parent / "inner"
        (inner / ".toolsEnv").mkdir(parents=True)

        assert find_environment_config(inner) == path.resolve()

    def test_not_found(self, temp_dir: Path) -> None:
        """Test the error when no config exists up to the root."""
        with pytest.raises(EnvConfigNotFoundError):
            find_environment_config(temp_dir, filename=".toolsEnv-does-not-exist")

    def test_load_environment(self, write_env: Callable[..., Path]) -> None:
        """Test find and parse together."""
        path = write_env(EXAMPLE)

        config = load_environment(path.parent, architecture="x86_64")

        assert config.version_token == "222"


class TestCurrentArchitecture:
    """Tests for machine name mapping."""

    @pytest.mark.parametrize(
        ("machine", "expected"),
        [("arm64", "arm64"), ("aarch64", "arm64"), ("x86_64", "x86_64"), ("AMD64", "x86_64")],
    )
    def test_known(self, monkeypatch: pytest.MonkeyPatch, machine: str, expected: str) -> None:
        """Test supported machines."""
        monkeypatch.setattr("toolsrunner.environment.platform.machine", lambda: machine)
        assert current_architecture() == expected

    def test_unknown(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test unsupported machines."""
        monkeypatch.setattr("toolsrunner.environment.platform.machine", lambda: "riscv64")

        with pytest.raises(UnsupportedArchitectureError):
            current_architecture()
