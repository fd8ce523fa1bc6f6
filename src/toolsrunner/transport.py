"""
Archive transport: fetch a tool archive and extract it into a cache slot.

Remote archives are downloaded with httpx into a temporary file; local
file:// archives are read in place. Extraction is delegated to an external
unzip tool.
"""

from __future__ import annotations

import subprocess
import tempfile
from pathlib import Path

import httpx
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TransferSpeedColumn

from toolsrunner import __version__
from toolsrunner.exceptions import ExtractionError, MissingChecksumError, TransportError
from toolsrunner.logging import get_console, get_logger, log_context
from toolsrunner.types import FetchSpec

logger = get_logger(__name__)

USER_AGENT = f"tools-runner/{__version__}"

REQUEST_TIMEOUT = 60.0

CHUNK_SIZE = 64 * 1024


def _content_length(response: httpx.Response) -> int | None:
    """Declared body size, or None when absent or unparseable."""
    try:
        return int(response.headers["Content-Length"]) or None
    except (KeyError, ValueError):
        return None


class ArchiveTransport:
    """Populates cache slots from local or remote zip archives."""

    def __init__(
        self,
        unzip_path: str = "unzip",
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.Client | None = None,
        show_progress: bool = True,
    ) -> None:
        """Initialize the transport.

        Args:
            unzip_path: Extraction tool, looked up on PATH if not absolute.
            timeout: Request timeout in seconds.
            client: Preconfigured HTTP client (mainly for tests).
            show_progress: Show a download bar when stderr is a terminal.
        """
        self.unzip_path = unzip_path
        self.timeout = timeout
        self.show_progress = show_progress
        self._client = client

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None

    def populate(
        self,
        fetch_spec: FetchSpec,
        destination: Path,
        version_token: str | None = None,
    ) -> None:
        """Fill a cache slot with the contents of the archive.

        Args:
            fetch_spec: Where the archive lives.
            destination: Existing, empty slot directory.
            version_token: Token pinning a remote archive.

        Raises:
            MissingChecksumError: Remote archive without a version token.
            TransportError: The archive could not be fetched or read.
            ExtractionError: The unzip tool failed.
        """
        if fetch_spec.requires_version_token and not version_token:
            raise MissingChecksumError()

        if fetch_spec.is_local_file:
            archive = fetch_spec.local_path
            if not archive.is_file():
                raise TransportError(
                    "Archive file not found",
                    context={"url": fetch_spec.url, "path": str(archive)},
                )
            self._unzip(archive, destination)
            return

        with tempfile.TemporaryDirectory(prefix="tools-runner-") as tmp:
            archive = Path(tmp) / "archive.zip"
            self._download(fetch_spec.url, archive)
            self._unzip(archive, destination)

    def _download(self, url: str, target: Path) -> None:
        """Stream a remote archive to a local file."""
        client = self._get_client()

        with log_context(phase="fetch"):
            logger.info("Downloading archive", url=url)
            try:
                with client.stream("GET", url) as response:
                    response.raise_for_status()
                    total = _content_length(response)
                    with self._progress() as progress, open(target, "wb") as f:
                        task = progress.add_task("Downloading", total=total)
                        for chunk in response.iter_bytes(CHUNK_SIZE):
                            f.write(chunk)
                            progress.advance(task, len(chunk))
            except httpx.HTTPStatusError as e:
                raise TransportError(
                    f"HTTP error fetching archive: {e.response.status_code}",
                    context={"url": url, "status_code": e.response.status_code},
                ) from e
            except httpx.HTTPError as e:
                raise TransportError(
                    f"Error fetching archive: {e}",
                    context={"url": url},
                ) from e
            except OSError as e:
                raise TransportError(
                    "Cannot write downloaded archive",
                    context={"url": url, "reason": str(e)},
                ) from e

    def _progress(self) -> Progress:
        """Transient download bar on stderr."""
        console = get_console()
        return Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=True,
            disable=not (self.show_progress and console.is_terminal),
        )

    def _unzip(self, archive: Path, destination: Path) -> None:
        """Extract an archive with the external unzip tool."""
        with log_context(phase="extract"):
            logger.debug("Extracting archive", archive=str(archive), destination=str(destination))
            try:
                completed = subprocess.run(
                    [self.unzip_path, str(archive), "-d", str(destination)],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    check=False,
                )
            except OSError as e:
                raise ExtractionError(str(e), context={"tool": self.unzip_path}) from e

            if completed.returncode != 0:
                diagnostic = completed.stderr.decode("utf-8", errors="replace").strip()
                raise ExtractionError(
                    diagnostic,
                    context={"tool": self.unzip_path, "exit_code": completed.returncode},
                )
