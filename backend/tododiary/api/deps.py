"""
Shared FastAPI dependencies.
"""
from tododiary.storage.client import StorageRegistry, get_storage_registry


def get_registry() -> StorageRegistry:
    """Storage registry resolved at startup (overridable in tests)."""
    return get_storage_registry()
