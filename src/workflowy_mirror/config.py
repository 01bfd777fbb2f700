"""Configuration constants for workflowy-mirror."""

import os
from pathlib import Path

from workflowy_mirror.protocols import RemoteStoreProtocol

# API token location. First file found is used.
API_TOKEN_FILES: list[Path] = [
    Path("~/.config/workflowy-mirror-token.txt").expanduser(),
    Path("~/.config/secret/workflowy-token.txt").expanduser(),
]

API_BASE_URL: str = "https://workflowy.com/api/v1"

# Where the tree snapshot is persisted. One file per mode.
CACHE_DIRECTORY: Path = Path(
    os.environ.get("WF_CACHE_DIR", "~/.cache/workflowy-mirror")
).expanduser()

# A mirror older than this is served but refreshed in the background.
CACHE_TTL_SECONDS: int = 5 * 60

# Hard deadline for a full sync.
SYNC_TIMEOUT_SECONDS: float = 60.0

# Report sync progress only when the node counter hits a multiple of this.
PROGRESS_EVERY: int = 10


def is_mock_mode() -> bool:
    """Sandbox mode uses in-memory data and a separate cache namespace."""
    return os.environ.get("WF_MOCK", "").lower() in ("1", "true")


def cache_file_path(*, mock: bool | None = None) -> Path:
    """Return the snapshot path for the real or sandbox namespace."""
    if mock is None:
        mock = is_mock_mode()
    return CACHE_DIRECTORY / ("tree-mock.json" if mock else "tree.json")


def create_store() -> RemoteStoreProtocol:
    """Build the remote store for the current mode."""
    if is_mock_mode():
        from workflowy_mirror.mock_api import MockWorkflowyApi

        return MockWorkflowyApi()

    from workflowy_mirror.api import WorkflowyApi

    return WorkflowyApi()
