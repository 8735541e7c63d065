"""Remote document store keyed by email, with a local-only fallback."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from ..errors import RemoteStoreError
from ..models import PersistedBundle, UserProfile, normalize_email

if TYPE_CHECKING:
    from ..config import AppConfig

logger = logging.getLogger(__name__)


class RemoteStore(ABC):
    """One bundle document per user, keyed by normalized email.

    ``pull`` returns None when no document exists; transport failures
    raise RemoteStoreError so callers can tell the two apart.
    """

    @abstractmethod
    async def pull(self, email: str) -> PersistedBundle | None:
        ...

    @abstractmethod
    async def push(self, email: str, bundle: PersistedBundle) -> None:
        ...

    @abstractmethod
    async def exists(self, email: str) -> bool:
        ...

    @abstractmethod
    async def list_all(self) -> list[UserProfile]:
        """Return the profile of every stored user. Privileged."""
        ...

    @property
    def is_cloud(self) -> bool:
        return False


def _profiles_from_documents(docs: list[dict]) -> list[UserProfile]:
    profiles: list[UserProfile] = []
    for doc in docs:
        raw = doc.get("userProfile")
        if raw is None:
            continue
        try:
            profiles.append(UserProfile.from_dict(raw))
        except (TypeError, ValueError, AttributeError):
            logger.warning("Skipping malformed profile document")
    return profiles


class LocalRemoteStore(RemoteStore):
    """Stand-in used when no cloud credentials are configured.

    Documents live in a dict keyed exactly like the cloud store. When
    ``path`` is given the dict is mirrored to a JSON file so that a later
    process sees the same documents.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path).expanduser() if path else None
        self._docs: dict[str, dict] = self._load()

    def _load(self) -> dict[str, dict]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RemoteStoreError(f"Cannot read local store {self._path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._docs, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self._path)

    async def pull(self, email: str) -> PersistedBundle | None:
        doc = self._docs.get(normalize_email(email))
        if doc is None:
            return None
        try:
            return PersistedBundle.from_dict(doc)
        except (TypeError, ValueError, AttributeError) as e:
            raise RemoteStoreError(f"Malformed document for {email!r}: {e}") from e

    async def push(self, email: str, bundle: PersistedBundle) -> None:
        self._docs[normalize_email(email)] = bundle.to_dict()
        try:
            self._save()
        except OSError as e:
            raise RemoteStoreError(f"Cannot write local store {self._path}: {e}") from e

    async def exists(self, email: str) -> bool:
        return normalize_email(email) in self._docs

    async def list_all(self) -> list[UserProfile]:
        return _profiles_from_documents(list(self._docs.values()))


class FirestoreRemoteStore(RemoteStore):
    """Cloud Firestore store using the Firebase Admin SDK.

    The SDK is blocking, so each call runs in a worker thread.
    """

    def __init__(
        self,
        credentials_path: str | Path,
        collection: str = "users",
        app_name: str = "smartreceipts",
    ) -> None:
        self._credentials_path = Path(credentials_path).expanduser()
        self._collection = collection
        self._app_name = app_name
        self._db = None

    @property
    def is_cloud(self) -> bool:
        return True

    def _get_db(self):
        """Initialize the Firebase app once and return a Firestore client."""
        if self._db is not None:
            return self._db

        try:
            import firebase_admin
            from firebase_admin import credentials, firestore
        except ImportError:
            raise ImportError(
                "firebase-admin is required for cloud sync: pip install firebase-admin"
            ) from None

        try:
            app = firebase_admin.get_app(self._app_name)
        except ValueError:
            if not self._credentials_path.exists():
                raise FileNotFoundError(
                    f"Firebase service account file not found: {self._credentials_path}"
                )
            cred = credentials.Certificate(str(self._credentials_path))
            app = firebase_admin.initialize_app(cred, name=self._app_name)
            logger.info("Firebase initialized with service account file")

        self._db = firestore.client(app=app)
        return self._db

    def _doc(self, email: str):
        return self._get_db().collection(self._collection).document(normalize_email(email))

    async def pull(self, email: str) -> PersistedBundle | None:
        try:
            snapshot = await asyncio.to_thread(self._doc(email).get)
        except Exception as e:
            raise RemoteStoreError(f"Firestore read failed for {email!r}: {e}") from e
        if not snapshot.exists:
            return None
        try:
            return PersistedBundle.from_dict(snapshot.to_dict() or {})
        except (TypeError, ValueError, AttributeError) as e:
            raise RemoteStoreError(f"Malformed document for {email!r}: {e}") from e

    async def push(self, email: str, bundle: PersistedBundle) -> None:
        try:
            await asyncio.to_thread(self._doc(email).set, bundle.to_dict())
        except Exception as e:
            raise RemoteStoreError(f"Firestore write failed for {email!r}: {e}") from e

    async def exists(self, email: str) -> bool:
        try:
            snapshot = await asyncio.to_thread(self._doc(email).get)
        except Exception as e:
            raise RemoteStoreError(f"Firestore read failed for {email!r}: {e}") from e
        return bool(snapshot.exists)

    async def list_all(self) -> list[UserProfile]:
        def _fetch() -> list[dict]:
            stream = self._get_db().collection(self._collection).stream()
            return [snap.to_dict() or {} for snap in stream]

        try:
            docs = await asyncio.to_thread(_fetch)
        except Exception as e:
            raise RemoteStoreError(f"Firestore listing failed: {e}") from e
        return _profiles_from_documents(docs)


def create_remote_store(config: AppConfig) -> RemoteStore:
    """Create the remote store for the configuration.

    Without Firebase credentials the local-only store is used.
    """
    remote = config.remote
    if remote.uses_cloud:
        return FirestoreRemoteStore(
            credentials_path=remote.credentials_path,
            collection=remote.collection,
        )
    logger.info("No Firebase credentials configured, using the local-only store")
    return LocalRemoteStore(path=remote.local_path or None)
