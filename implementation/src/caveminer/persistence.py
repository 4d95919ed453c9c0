"""Keeps the local and remote copies of a save consistent.

Local first: every save is written to the local store, and a remote failure
never undoes or blocks it. The remote copy is only written when the change is
worth the round trip (forced, flagged by the reducer, or prestige progress).

On load, when both copies exist the one with the later last_saved wins
(ties go to local) and is written back over the loser. Version counters are
per store and never compared.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Awaitable, Callable, Dict, Optional

from caveminer.errors import LocalStoreError, RemoteStoreError, SnapshotDecodeError
from caveminer.save import LocalStore, decode_snapshot, encode_snapshot, snapshot_last_saved
from caveminer.state import GameState, default_state


@dataclass(frozen=True)
class Identity:
    user_id: Optional[str] = None
    is_authenticated: bool = False
    just_logged_in: bool = False


ANONYMOUS = Identity()

IdentityProvider = Callable[[], Awaitable[Identity]]


@dataclass(frozen=True)
class RemoteRecord:
    user_id: str
    game_data: bytes
    row_id: Optional[int] = None   # assigned by the store on first insert
    updated_at: float = 0.0


class RemoteStore:
    """Per-user record storage. Every method raises RemoteStoreError."""

    async def fetch(self, user_id: str) -> Optional[RemoteRecord]:
        raise NotImplementedError

    async def upsert(self, record: RemoteRecord) -> RemoteRecord:
        raise NotImplementedError

    async def delete(self, user_id: str) -> None:
        raise NotImplementedError


class MemoryRemoteStore(RemoteStore):
    """In-process stand-in for a remote database.

    Set `failure` to make every call raise it, to exercise degraded paths.
    """

    def __init__(self) -> None:
        self.records: Dict[str, RemoteRecord] = {}
        self.failure: Optional[RemoteStoreError] = None
        self.upserts = 0
        self._next_row_id = 1

    def _check(self) -> None:
        if self.failure is not None:
            raise self.failure

    async def fetch(self, user_id: str) -> Optional[RemoteRecord]:
        self._check()
        return self.records.get(user_id)

    async def upsert(self, record: RemoteRecord) -> RemoteRecord:
        self._check()
        existing = self.records.get(record.user_id)
        if existing is not None:
            row_id = existing.row_id
        elif record.row_id is not None:
            row_id = record.row_id
        else:
            row_id = self._next_row_id
            self._next_row_id += 1
        stored = replace(record, row_id=row_id)
        self.records[record.user_id] = stored
        self.upserts += 1
        return stored

    async def delete(self, user_id: str) -> None:
        self._check()
        self.records.pop(user_id, None)


async def resolve_identity(provider: Optional[IdentityProvider], timeout: float) -> Identity:
    """Ask the identity provider who is playing, giving up after timeout.

    A slow or failing provider means local-only play, never a hung start.
    """
    if provider is None:
        return ANONYMOUS
    try:
        return await asyncio.wait_for(provider(), timeout)
    except asyncio.TimeoutError:
        print(f"[persist] Identity not resolved within {timeout:.0f}s, continuing offline")
    except Exception as e:
        print(f"[persist] Identity provider failed: {e}")
    return ANONYMOUS


def is_pristine(state: GameState) -> bool:
    """A snapshot with no progress at all."""
    return (
        state.total_clicks == 0
        and state.total_coins_earned == 0.0
        and state.rebirths == 0
        and state.gold_coins == 0.0
    )


def has_prestige_progress(state: GameState) -> bool:
    return state.rebirths > 0 or state.gold_coins > 0.0


@dataclass
class SaveResult:
    state: GameState             # the snapshot as written: new last_saved and version
    local_ok: bool
    remote_attempted: bool = False
    remote_ok: bool = False
    message: Optional[str] = None


@dataclass
class LoadResult:
    state: GameState
    source: str                  # "local", "remote" or "default"
    message: Optional[str] = None


@dataclass
class SyncResult:
    saved: SaveResult
    state: Optional[GameState] = None   # set only when the remote copy was newer
    message: str = ""


class PersistenceCoordinator:
    def __init__(
        self,
        local: LocalStore,
        remote: Optional[RemoteStore] = None,
        storage_key: str = "gameState",
        remote_timeout: float = 10.0,
    ) -> None:
        self.local = local
        self.remote = remote
        self.storage_key = storage_key
        self.remote_timeout = remote_timeout

    def _remote_enabled(self, identity: Identity) -> bool:
        return self.remote is not None and identity.is_authenticated and bool(identity.user_id)

    def should_push_remote(self, state: GameState, identity: Identity, force: bool = False) -> bool:
        if not self._remote_enabled(identity):
            return False
        return force or state.needs_cloud_save or has_prestige_progress(state)

    # ── local ──

    def _write_local(self, raw: bytes) -> bool:
        try:
            self.local.set(self.storage_key, raw)
            return True
        except LocalStoreError as e:
            print(f"[persist] Local save failed: {e}")
            return False

    def checkpoint(self, state: GameState) -> bool:
        """Write the snapshot locally as is, keeping its last_saved and version."""
        return self._write_local(encode_snapshot(state))

    def _read_local(self) -> Optional[GameState]:
        try:
            raw = self.local.get(self.storage_key)
        except LocalStoreError as e:
            print(f"[persist] Local load failed: {e}")
            return None
        if raw is None:
            return None
        try:
            return decode_snapshot(raw)
        except SnapshotDecodeError as e:
            print(f"[persist] Ignoring corrupt local save: {e}")
            return None

    # ── remote ──

    async def _fetch_remote(self, identity: Identity) -> Optional[RemoteRecord]:
        assert self.remote is not None and identity.user_id
        try:
            return await asyncio.wait_for(self.remote.fetch(identity.user_id), self.remote_timeout)
        except asyncio.TimeoutError as e:
            raise RemoteStoreError("remote fetch timed out", RemoteStoreError.NETWORK) from e

    async def _push_remote(self, identity: Identity, raw: bytes, now: float) -> None:
        assert self.remote is not None and identity.user_id
        record = RemoteRecord(user_id=identity.user_id, game_data=raw, updated_at=now)
        try:
            await asyncio.wait_for(self.remote.upsert(record), self.remote_timeout)
        except asyncio.TimeoutError as e:
            raise RemoteStoreError("remote upsert timed out", RemoteStoreError.NETWORK) from e

    @staticmethod
    def _decode_record(record: Optional[RemoteRecord]) -> Optional[GameState]:
        if record is None:
            return None
        try:
            return decode_snapshot(record.game_data)
        except SnapshotDecodeError as e:
            print(f"[persist] Ignoring corrupt remote save: {e}")
            return None

    # ── operations ──

    async def save(
        self,
        state: GameState,
        identity: Identity,
        force_remote: bool = False,
        now: float = 0.0,
    ) -> SaveResult:
        push = self.should_push_remote(state, identity, force_remote)
        saved = replace(
            state,
            last_saved=now,
            version=state.version + 1,
            needs_save=False,
            needs_cloud_save=False,
        )
        raw = encode_snapshot(saved)
        result = SaveResult(state=saved, local_ok=self._write_local(raw))
        if not push:
            return result

        result.remote_attempted = True
        try:
            if is_pristine(saved) and await self._fetch_remote(identity) is not None:
                print("[persist] Not overwriting existing cloud save with an empty game")
                result.remote_ok = True
                return result
            await self._push_remote(identity, raw, now)
            result.remote_ok = True
        except RemoteStoreError as e:
            print(f"[persist] Remote save failed ({e.code}): {e}")
            result.message = e.user_message
        return result

    async def load(
        self,
        identity: Identity,
        force_reload: bool = False,
        now: float = 0.0,
    ) -> LoadResult:
        local_state = self._read_local()
        message = None

        remote_state = None
        remote_checked = False
        want_remote = force_reload or identity.just_logged_in or local_state is None
        if self._remote_enabled(identity) and want_remote:
            try:
                record = await self._fetch_remote(identity)
                remote_checked = True
                remote_state = self._decode_record(record)
            except RemoteStoreError as e:
                print(f"[persist] Remote load failed ({e.code}): {e}")
                message = e.user_message

        if local_state is not None and remote_state is not None:
            if is_pristine(local_state) or remote_state.last_saved > local_state.last_saved:
                print("[persist] Cloud save is newer or local save is empty, using cloud save")
                self._write_local(encode_snapshot(remote_state))
                return LoadResult(remote_state, "remote", message)
            if local_state.last_saved > remote_state.last_saved:
                await self._push_quietly(identity, local_state, now)
            return LoadResult(local_state, "local", message)

        if remote_state is not None:
            self._write_local(encode_snapshot(remote_state))
            return LoadResult(remote_state, "remote", message)

        if local_state is not None:
            if remote_checked and not is_pristine(local_state):
                await self._push_quietly(identity, local_state, now)
            return LoadResult(local_state, "local", message)

        return LoadResult(default_state(now), "default", message)

    async def _push_quietly(self, identity: Identity, state: GameState, now: float) -> None:
        try:
            await self._push_remote(identity, encode_snapshot(state), now)
        except RemoteStoreError as e:
            print(f"[persist] Could not update cloud copy ({e.code}): {e}")

    async def force_sync(self, state: GameState, identity: Identity, now: float = 0.0) -> SyncResult:
        """Save (forcing the remote write), then adopt the remote copy only if
        it is strictly newer than what was just saved."""
        saved = await self.save(state, identity, force_remote=True, now=now)
        if not self._remote_enabled(identity):
            return SyncResult(saved, None, "Sign in to sync with the cloud.")
        if not saved.remote_ok:
            return SyncResult(saved, None, saved.message or "Cloud sync failed.")
        try:
            remote_state = self._decode_record(await self._fetch_remote(identity))
        except RemoteStoreError as e:
            print(f"[persist] Remote fetch failed ({e.code}): {e}")
            return SyncResult(saved, None, e.user_message)
        if remote_state is not None and remote_state.last_saved > saved.state.last_saved:
            self._write_local(encode_snapshot(remote_state))
            return SyncResult(saved, remote_state, "Loaded newer cloud save.")
        return SyncResult(saved, None, "Already up to date.")

    async def has_newer_remote(self, identity: Identity, local_last_saved: float) -> bool:
        if not self._remote_enabled(identity):
            return False
        try:
            record = await self._fetch_remote(identity)
        except RemoteStoreError as e:
            print(f"[persist] Remote check failed ({e.code}): {e}")
            return False
        if record is None:
            return False
        try:
            return snapshot_last_saved(record.game_data) > local_last_saved
        except SnapshotDecodeError:
            return False

    async def delete_remote(self, identity: Identity) -> bool:
        if not self._remote_enabled(identity):
            return False
        assert self.remote is not None and identity.user_id
        try:
            await asyncio.wait_for(self.remote.delete(identity.user_id), self.remote_timeout)
            return True
        except (RemoteStoreError, asyncio.TimeoutError) as e:
            print(f"[persist] Remote delete failed: {e}")
            return False
