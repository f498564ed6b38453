"""Per-method login implementations."""

from .form_login import FormLoginMethod, ResolvedCredentials
from .storage_state import StorageStateMethod

__all__ = ["FormLoginMethod", "ResolvedCredentials", "StorageStateMethod"]
