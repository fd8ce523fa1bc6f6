"""
Launcher: resolve a project's pinned tool through the cache and run it.

One invocation is strictly sequential:

    load index -> decide -> (allocate slot -> populate) -> save index
    -> sweep (optional) -> exec

Nothing is kept in memory between invocations; config.json is the only
state shared across runs.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Protocol, Sequence

from toolsrunner.cache.policy import CachePolicy
from toolsrunner.cache.store import CacheStore
from toolsrunner.config import Settings
from toolsrunner.exceptions import CacheError, MissingChecksumError, ToolsRunnerError
from toolsrunner.logging import get_logger, log_context
from toolsrunner.process import ProcessExecutor
from toolsrunner.transport import ArchiveTransport
from toolsrunner.types import CacheEntry, EnvironmentConfig, FetchSpec, Reuse

logger = get_logger(__name__)


class Transport(Protocol):
    """Fills a cache slot from an archive."""

    def populate(
        self,
        fetch_spec: FetchSpec,
        destination: Path,
        version_token: str | None = None,
    ) -> None:
        ...


class Executor(Protocol):
    """Runs the tool binary and never returns normally."""

    def exec(
        self,
        binary_path: Path,
        args: Sequence[str],
        extra_env: dict[str, str] | None = None,
    ) -> NoReturn:
        ...


class Launcher:
    """Sequences cache decisions, archive transport and execution."""

    def __init__(
        self,
        store: CacheStore,
        policy: CachePolicy,
        transport: Transport,
        executor: Executor,
        sweep_on_run: bool = True,
        env_dir_variable: str = "TOOLS_EVN_DIR",
    ) -> None:
        self.store = store
        self.policy = policy
        self.transport = transport
        self.executor = executor
        self.sweep_on_run = sweep_on_run
        self.env_dir_variable = env_dir_variable

    @classmethod
    def from_settings(cls, settings: Settings) -> Launcher:
        """Wire the default collaborators from runner settings."""
        store = CacheStore(settings.HOME_DIR)
        return cls(
            store=store,
            policy=CachePolicy(store, retention=settings.retention),
            transport=ArchiveTransport(
                unzip_path=settings.UNZIP_PATH,
                timeout=settings.FETCH_TIMEOUT,
            ),
            executor=ProcessExecutor(),
            sweep_on_run=settings.SWEEP_ON_RUN,
            env_dir_variable=settings.ENV_DIR_VARIABLE,
        )

    def resolve(
        self,
        project_key: str,
        version_token: str | None,
        fetch_spec: FetchSpec,
    ) -> Path:
        """Return a populated cache slot for the project, fetching if needed.

        Args:
            project_key: Absolute path of the project's config directory.
            version_token: Token the project currently declares.
            fetch_spec: Where to fetch the archive on a miss.

        Returns:
            Path of the slot directory holding the extracted archive.

        Raises:
            MissingChecksumError: Remote archive without a token.
            CacheError: Index or slot management failed.
            TransportError, ExtractionError: The refresh failed.
        """
        if fetch_spec.requires_version_token and not version_token:
            raise MissingChecksumError()

        with log_context(project=project_key, phase="resolve"):
            decision = self.policy.decide(project_key, version_token)

            if isinstance(decision, Reuse):
                self.store.save(decision.entry, project_key)
                directory = decision.directory
            else:
                directory = self._refresh(project_key, version_token, fetch_spec)

            if self.sweep_on_run:
                self._sweep()

        return directory

    def _refresh(
        self,
        project_key: str,
        version_token: str | None,
        fetch_spec: FetchSpec,
    ) -> Path:
        """Fetch into a new slot and record it for the project."""
        name, directory = self.store.allocate_directory()

        try:
            self.transport.populate(fetch_spec, directory, version_token)
        except ToolsRunnerError:
            self.store.remove_directory(name)
            raise

        entry = CacheEntry.create(name, version_token=version_token)
        self.store.save(entry, project_key)
        logger.info("Cached new archive", directory=name)
        return directory

    def _sweep(self) -> None:
        """Run the retention sweep; failures only get logged."""
        with log_context(phase="sweep"):
            try:
                self.policy.evict_stale()
            except CacheError as e:
                logger.warning("Retention sweep skipped", error=str(e))

    def run(self, environment: EnvironmentConfig, args: Sequence[str]) -> NoReturn:
        """Resolve the project's tool and run it with the given arguments.

        Raises:
            ToolsRunnerError: If resolution fails or the binary is missing.
            SystemExit: With the tool's exit status.
        """
        directory = self.resolve(
            environment.project_key,
            environment.version_token,
            environment.fetch_spec,
        )
        self.executor.exec(
            directory / environment.executable,
            args,
            {self.env_dir_variable: str(environment.project_dir)},
        )
