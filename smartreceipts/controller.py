"""Application state controller.

Owns the in-memory state and keeps it consistent with the local cache and
the remote store:

* at construction the local cache seeds the state synchronously;
* ``boot`` restores the session by pulling the remote bundle, which wins
  over the cache for every field it carries;
* every change to a tracked field is written to the local cache right away
  (unless that would replace a cached non-empty history with an empty one)
  and then pushed to the remote store after an idle delay, latest state
  winning.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING

from .access import is_admin, validate_code
from .errors import (
    CHAT_FAILED,
    CONNECTION_ERROR,
    INVALID_PROMO,
    PROCESSING_FAILED,
    USER_ALREADY_EXISTS,
    USER_NOT_FOUND,
    CoachError,
    ExtractionError,
    RemoteStoreError,
)
from .models import (
    CHAT_LIMIT,
    HISTORY_LIMIT,
    ChatMessage,
    PersistedBundle,
    Receipt,
    SessionPointer,
    UserProfile,
    normalize_email,
    utc_now,
)
from .wakelock import NullWakeLock, WakeLock

if TYPE_CHECKING:
    from .coach import GeminiCoach
    from .store import LocalCache, RemoteStore
    from .vision import ReceiptExtractor

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 5.0

# Fields whose change triggers a local write and a remote push.
_TRACKED_FIELDS = ("user_profile", "history", "chat_history", "is_cloud_enabled")


class Phase(str, Enum):
    INITIALIZING = "initializing"
    SYNCING = "syncing"
    READY = "ready"


@dataclass
class AppState:
    user_profile: UserProfile = field(default_factory=UserProfile)
    last_analysis: Receipt | None = None
    history: list[Receipt] = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
    chat_history: list[ChatMessage] = field(default_factory=list)
    is_cloud_enabled: bool = True

    def to_bundle(self) -> PersistedBundle:
        return PersistedBundle(
            user_profile=self.user_profile,
            history=list(self.history),
            chat_history=list(self.chat_history),
            is_cloud_enabled=self.is_cloud_enabled,
            updated_at=utc_now(),
        )


def merge_bundle(state: AppState, bundle: PersistedBundle) -> AppState:
    """Overwrite the bundle fields present in ``bundle``; keep the rest."""
    changes: dict = {}
    if bundle.user_profile is not None:
        changes["user_profile"] = bundle.user_profile
    if bundle.history is not None:
        changes["history"] = list(bundle.history)[:HISTORY_LIMIT]
    if bundle.chat_history is not None:
        changes["chat_history"] = list(bundle.chat_history)[-CHAT_LIMIT:]
    if bundle.is_cloud_enabled is not None:
        changes["is_cloud_enabled"] = bundle.is_cloud_enabled
    return replace(state, **changes)


class ReconciliationController:
    """Single writer of application state.

    Args:
        local: Local cache adapter. Read synchronously in the constructor.
        remote: Remote store adapter.
        extractor: Receipt extraction backend used by ``upload``.
        coach: Chat backend used by ``send_chat_message``.
        wake_lock: Held while a batch of receipts is being processed.
        debounce_seconds: Idle delay before a remote push.
        admin_emails: Emails allowed to list users besides owners.
    """

    def __init__(
        self,
        local: LocalCache,
        remote: RemoteStore,
        *,
        extractor: ReceiptExtractor | None = None,
        coach: GeminiCoach | None = None,
        wake_lock: WakeLock | None = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        admin_emails: list[str] | None = None,
    ) -> None:
        self._local = local
        self._remote = remote
        self._extractor = extractor
        self._coach = coach
        self._wake_lock = wake_lock or NullWakeLock()
        self._debounce_seconds = debounce_seconds
        self._admin_emails = list(admin_emails or [])

        self._phase = Phase.INITIALIZING
        self._boot_window = True
        self._push_task: asyncio.Task | None = None
        self._pending_bundle: PersistedBundle | None = None
        self._inflight: set[asyncio.Task] = set()
        self._drafts: list[Receipt] = []

        cached = self._local.read_bundle()
        self._cached_updated_at = cached.updated_at if cached else None
        self._state = merge_bundle(AppState(), cached) if cached else AppState()

    # -- read access --------------------------------------------------------

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_syncing(self) -> bool:
        return (
            self._phase is Phase.SYNCING
            or self._push_task is not None
            or bool(self._inflight)
        )

    @property
    def is_cloud_active(self) -> bool:
        return self._remote.is_cloud

    @property
    def drafts(self) -> list[Receipt]:
        return list(self._drafts)

    # -- boot ---------------------------------------------------------------

    async def boot(self) -> None:
        """Restore the session, if any, and enter the READY phase.

        Runs once; later calls are no-ops. A failed pull leaves the
        cache-seeded state in place.
        """
        if self._phase is not Phase.INITIALIZING:
            return

        session = self._local.read_session()
        if session is not None:
            self._phase = Phase.SYNCING
            try:
                bundle = await self._remote.pull(session.email)
            except RemoteStoreError:
                logger.exception(
                    "Could not restore session for %s, keeping cached state",
                    session.email,
                )
            else:
                if bundle is not None:
                    self._warn_if_older(bundle)
                    self._state = replace(
                        merge_bundle(self._state, bundle), is_loading=False
                    )

        self._phase = Phase.READY
        self._persist()
        self._boot_window = False

    def _warn_if_older(self, bundle: PersistedBundle) -> None:
        cached = self._cached_updated_at
        if cached and bundle.updated_at and bundle.updated_at < cached:
            logger.warning(
                "Remote bundle (%s) is older than the local cache (%s); "
                "remote copy wins",
                bundle.updated_at,
                cached,
            )

    # -- state replacement and persistence ----------------------------------

    def replace_state(self, **changes) -> None:
        """Replace fields of the state. The only mutation path after boot."""
        previous = self._state
        self._state = replace(previous, **changes)
        if self._phase is not Phase.READY:
            return
        if any(
            getattr(previous, name) != getattr(self._state, name)
            for name in _TRACKED_FIELDS
        ):
            self._persist()

    def _persist(self) -> bool:
        """Write the state to the local cache and schedule a remote push.

        Returns False when nothing was written.
        """
        email = self._state.user_profile.email
        if not email:
            return False

        proposed = self._state.to_bundle()
        stored = self._local.read_bundle()
        if (
            stored is not None
            and stored.history
            and not proposed.history
            and not self._boot_window
        ):
            logger.warning(
                "Not overwriting %d cached receipts with an empty history",
                len(stored.history),
            )
            return False

        self._local.write_session(SessionPointer(email=email))
        self._local.write_bundle(proposed)
        self._schedule_push(proposed)
        return True

    def _schedule_push(self, bundle: PersistedBundle) -> None:
        self._cancel_timer()
        if not bundle.is_cloud_enabled:
            # latest state wins, so an earlier pending push is dropped too
            self._pending_bundle = None
            return
        self._pending_bundle = bundle
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, remote push left pending")
            return
        self._push_task = loop.create_task(self._push_after_delay(bundle))

    def _cancel_timer(self) -> None:
        if self._push_task is not None:
            self._push_task.cancel()
            self._push_task = None

    async def _push_after_delay(self, bundle: PersistedBundle) -> None:
        await asyncio.sleep(self._debounce_seconds)
        # Fired: from here on the push runs to completion.
        task = asyncio.current_task()
        if self._push_task is task:
            self._push_task = None
            self._pending_bundle = None
        if task is not None:
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
        await self._push(bundle)

    async def _push(self, bundle: PersistedBundle) -> None:
        if not bundle.is_cloud_enabled or not bundle.email:
            return
        try:
            await self._remote.push(bundle.email, bundle)
        except RemoteStoreError:
            logger.exception("Remote push failed for %s", bundle.email)
        else:
            logger.info(
                "Pushed %d receipts for %s",
                len(bundle.history or []),
                bundle.email,
            )

    async def flush(self) -> None:
        """Push a pending bundle now and wait for pushes in flight."""
        bundle = self._pending_bundle
        self._cancel_timer()
        self._pending_bundle = None
        if bundle is not None:
            await self._push(bundle)
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)

    def close(self) -> None:
        """Cancel the pending push timer."""
        self._cancel_timer()
        self._pending_bundle = None

    # -- session ------------------------------------------------------------

    async def sign_in(self, email: str) -> bool:
        self.replace_state(is_loading=True, error=None)
        try:
            bundle = await self._remote.pull(email)
        except RemoteStoreError:
            logger.exception("Sign-in failed for %s", email)
            self.replace_state(is_loading=False, error=CONNECTION_ERROR)
            return False
        if bundle is None:
            self.replace_state(is_loading=False, error=USER_NOT_FOUND)
            return False

        if bundle.user_profile is None:
            bundle.user_profile = UserProfile(email=email)
        await self._leave_other_account(email)
        fresh = merge_bundle(AppState(), bundle)
        self.replace_state(
            user_profile=fresh.user_profile,
            history=fresh.history,
            chat_history=fresh.chat_history,
            is_cloud_enabled=fresh.is_cloud_enabled,
            last_analysis=None,
            is_loading=False,
            error=None,
        )
        return True

    async def sign_up(
        self, email: str, promo_code: str | None, user_name: str = ""
    ) -> bool:
        self.replace_state(is_loading=True, error=None)

        grant = validate_code(promo_code)
        if grant is None:
            self.replace_state(is_loading=False, error=INVALID_PROMO)
            return False

        try:
            exists = await self._remote.exists(email)
        except RemoteStoreError:
            logger.exception("Existence check failed for %s", email)
            self.replace_state(is_loading=False, error=CONNECTION_ERROR)
            return False
        if exists:
            self.replace_state(is_loading=False, error=USER_ALREADY_EXISTS)
            return False

        await self._leave_other_account(email)
        profile = UserProfile(
            user_name=user_name,
            email=email,
            promo_code=(promo_code or "").strip().upper(),
            account_status=grant.status,
            role=grant.role,
            joined_at=utc_now(),
        )
        self.replace_state(
            user_profile=profile,
            history=[],
            chat_history=[],
            last_analysis=None,
            is_loading=False,
            error=None,
        )
        return True

    async def _leave_other_account(self, email: str) -> None:
        """Push and drop the cached bundle when it belongs to another account."""
        stored = self._local.read_bundle()
        if stored is None or not stored.email or stored.email == normalize_email(email):
            return
        await self.flush()
        self._local.clear_all()
        self._drafts.clear()
        self._cached_updated_at = None
        logger.info("Switching account from %s, local cache cleared", stored.email)

    def logout(self) -> None:
        """Discard the session and the cached bundle, then reset to defaults."""
        self.close()
        self._local.clear_all()
        self._drafts.clear()
        self._state = AppState()
        self._cached_updated_at = None
        logger.info("Signed out, local cache cleared")

    # -- intents from views -------------------------------------------------

    def update_profile(self, profile: UserProfile) -> None:
        current = self._state.user_profile.email
        if current and profile.email != current:
            profile = replace(profile, email=current)
        self.replace_state(user_profile=profile)

    def set_cloud_enabled(self, enabled: bool) -> None:
        self.replace_state(is_cloud_enabled=enabled)

    def toggle_cloud(self) -> None:
        self.set_cloud_enabled(not self._state.is_cloud_enabled)

    def clear_error(self) -> None:
        self.replace_state(error=None)

    def select_receipt(self, receipt_id: str) -> Receipt | None:
        for receipt in self._state.history:
            if receipt.id == receipt_id:
                self.replace_state(last_analysis=receipt)
                return receipt
        return None

    async def upload(self, data: bytes, mime_type: str = "image/jpeg") -> Receipt | None:
        drafts = await self.process_batch([(data, mime_type)])
        return drafts[0] if drafts else None

    async def process_batch(self, files: list[tuple[bytes, str]]) -> list[Receipt]:
        """Extract each file into a draft receipt awaiting review.

        Files that cannot be read produce no draft and set
        ``PROCESSING_FAILED``.
        """
        if self._extractor is None:
            raise RuntimeError("No receipt extractor configured")

        self.replace_state(is_loading=True, error=None)
        drafts: list[Receipt] = []
        failed = False
        self._wake_lock.acquire()
        try:
            for data, mime_type in files:
                try:
                    receipt = await self._extractor.extract(
                        data, mime_type, self._state.user_profile
                    )
                except ExtractionError:
                    logger.exception("Receipt extraction failed")
                    failed = True
                    continue
                encoded = base64.b64encode(data).decode()
                drafts.append(
                    replace(
                        receipt,
                        id=str(uuid.uuid4()),
                        image_url=f"data:{mime_type};base64,{encoded}",
                    )
                )
        finally:
            self._wake_lock.release()
            self._drafts.extend(drafts)
            self.replace_state(
                is_loading=False, error=PROCESSING_FAILED if failed else None
            )
        return drafts

    def discard_draft(self, receipt_id: str) -> None:
        self._drafts = [d for d in self._drafts if d.id != receipt_id]

    def save_receipt(self, receipt: Receipt) -> Receipt:
        """Save a new or edited receipt; an existing id is replaced in place."""
        receipt = receipt.with_categories(self._state.user_profile.custom_categories)
        history = list(self._state.history)
        for idx, existing in enumerate(history):
            if existing.id == receipt.id:
                history[idx] = receipt
                break
        else:
            history.insert(0, receipt)
        self.discard_draft(receipt.id)
        self.replace_state(last_analysis=receipt, history=history[:HISTORY_LIMIT])
        return receipt

    async def send_chat_message(self, text: str) -> str | None:
        if self._coach is None:
            raise RuntimeError("No coach configured")

        prior = list(self._state.chat_history)
        self.replace_state(
            chat_history=(prior + [ChatMessage(role="user", text=text)])[-CHAT_LIMIT:],
            is_loading=True,
            error=None,
        )
        answer = None
        try:
            answer = await self._coach.reply(
                text, self._state.history, self._state.user_profile, prior
            )
        except CoachError:
            logger.exception("Coach reply failed")
            return None
        finally:
            if answer is None:
                self.replace_state(is_loading=False, error=CHAT_FAILED)

        log = self._state.chat_history + [ChatMessage(role="model", text=answer)]
        self.replace_state(chat_history=log[-CHAT_LIMIT:], is_loading=False)
        return answer

    async def list_users(self) -> list[UserProfile]:
        """List every stored profile. Owners and configured admins only."""
        profile = self._state.user_profile
        if not (profile.is_owner or is_admin(profile.email, self._admin_emails)):
            raise PermissionError("Only the owner can list users")
        try:
            return await self._remote.list_all()
        except RemoteStoreError:
            logger.exception("Listing users failed")
            return []

    def export_backup(self) -> dict:
        return PersistedBundle(
            user_profile=self._state.user_profile,
            history=list(self._state.history),
        ).to_dict()

    def import_backup(self, data: dict) -> None:
        """Merge a backup document into the state.

        The signed-in email is kept even if the backup carries another one.

        Raises:
            TypeError, ValueError: If the backup is malformed.
        """
        bundle = PersistedBundle.from_dict(data)
        current = self._state.user_profile.email
        if bundle.user_profile is not None and current:
            bundle.user_profile = replace(bundle.user_profile, email=current)
        merged = merge_bundle(self._state, bundle)
        self.replace_state(
            **{name: getattr(merged, name) for name in _TRACKED_FIELDS}
        )
