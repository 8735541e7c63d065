"""Receipt-scanning personal finance assistant."""

from .config import AppConfig, load_config
from .controller import AppState, Phase, ReconciliationController, merge_bundle
from .models import (
    ChatMessage,
    Item,
    PersistedBundle,
    Receipt,
    ReceiptAnalysis,
    ReceiptMeta,
    SessionPointer,
    UserProfile,
)
from .store import LocalCache, LocalRemoteStore, RemoteStore, create_remote_store
from .vision import ReceiptExtractor, create_extractor

__all__ = [
    "ReconciliationController",
    "AppState",
    "Phase",
    "merge_bundle",
    "UserProfile",
    "Receipt",
    "ReceiptMeta",
    "ReceiptAnalysis",
    "Item",
    "ChatMessage",
    "PersistedBundle",
    "SessionPointer",
    "LocalCache",
    "RemoteStore",
    "LocalRemoteStore",
    "create_remote_store",
    "ReceiptExtractor",
    "create_extractor",
    "AppConfig",
    "load_config",
]
