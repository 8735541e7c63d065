"""Local cache and remote document store adapters."""

from .local import LocalCache
from .remote import (
    FirestoreRemoteStore,
    LocalRemoteStore,
    RemoteStore,
    create_remote_store,
)

__all__ = [
    "LocalCache",
    "RemoteStore",
    "LocalRemoteStore",
    "FirestoreRemoteStore",
    "create_remote_store",
]
