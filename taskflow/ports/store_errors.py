"""Remote store errors — the only remote failures core modules ever see.

Adapters translate SDK and HTTP errors into this family.
"""

from __future__ import annotations


class RemoteStoreError(Exception):
    """Raised when a remote store operation fails."""


class RemoteUnavailableError(RemoteStoreError):
    """Remote store not configured or not reachable."""


class PermissionDeniedError(RemoteStoreError):
    """Remote access-control rejection. Needs a configuration fix, not a retry."""
