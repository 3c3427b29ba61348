# edutube_sync/DB/__init__.py
from .Local_Mirror import (
    LocalMirror, CANONICAL_KEY, LEGACY_KEYS,
    MirrorStorageError, SchemaError, StorageCorrupt, StorageQuotaExceeded, InputError
)

__all__ = [
    "LocalMirror", "CANONICAL_KEY", "LEGACY_KEYS",
    "MirrorStorageError", "SchemaError", "StorageCorrupt", "StorageQuotaExceeded", "InputError"
]
