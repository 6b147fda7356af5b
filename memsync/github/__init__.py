"""GitHub credential, API and git-sync layer for memsync."""

from .api import GitHubClient
from .credentials import CredentialProvider
from .device_flow import DeviceCode, DeviceFlow
from .git import GitRepo, MergeResult
from .records import record_path, serialize_record
from .sync_engine import GitHubSync, RepoState

__all__ = [
    "CredentialProvider",
    "DeviceCode",
    "DeviceFlow",
    "GitHubClient",
    "GitHubSync",
    "GitRepo",
    "MergeResult",
    "RepoState",
    "record_path",
    "serialize_record",
]
