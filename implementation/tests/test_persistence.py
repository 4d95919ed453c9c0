from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from caveminer.errors import LocalStoreError, RemoteStoreError
from caveminer.persistence import (
    ANONYMOUS,
    Identity,
    MemoryRemoteStore,
    PersistenceCoordinator,
    RemoteRecord,
    resolve_identity,
)
from caveminer.save import MemoryStore, decode_snapshot, encode_snapshot

from helpers import fresh, with_pickaxes

PLAYER = Identity(user_id="player-1", is_authenticated=True)
KEY = "gameState"


def run(coro):
    return asyncio.run(coro)


def coordinator(remote=True):
    local = MemoryStore()
    cloud = MemoryRemoteStore() if remote else None
    return PersistenceCoordinator(local, cloud, storage_key=KEY), local, cloud


def progressed(**changes):
    return with_pickaxes(fresh(**{"coins": 250, "total_clicks": 40, "total_coins_earned": 300, **changes}), "wooden-pickaxe")


def put_remote(cloud, state):
    cloud.records[PLAYER.user_id] = RemoteRecord(PLAYER.user_id, encode_snapshot(state), row_id=1)


class BrokenLocal(MemoryStore):
    def set(self, key, value):
        raise LocalStoreError("disk full")


# ── save ──

def test_save_always_writes_local():
    persistence, local, cloud = coordinator()
    result = run(persistence.save(progressed(version=3), ANONYMOUS, now=500.0))
    assert result.local_ok
    assert not result.remote_attempted
    saved = decode_snapshot(local.data[KEY])
    assert saved.last_saved == 500.0
    assert saved.version == 4
    assert saved.coins == 250
    assert cloud.upserts == 0


def test_ordinary_progress_stays_local():
    persistence, _, cloud = coordinator()
    result = run(persistence.save(progressed(), PLAYER, now=10.0))
    assert not result.remote_attempted
    assert cloud.upserts == 0


@pytest.mark.parametrize(
    "state, force",
    [
        (replace(progressed(), needs_cloud_save=True), False),
        (progressed(gold_coins=3), False),
        (progressed(rebirths=1), False),
        (progressed(), True),
    ],
)
def test_remote_write_when_warranted(state, force):
    persistence, _, cloud = coordinator()
    result = run(persistence.save(state, PLAYER, force_remote=force, now=10.0))
    assert result.remote_attempted and result.remote_ok
    assert decode_snapshot(cloud.records["player-1"].game_data).last_saved == 10.0


def test_saved_snapshot_has_clean_flags():
    persistence, _, _ = coordinator()
    state = replace(progressed(), needs_save=True, needs_cloud_save=True)
    result = run(persistence.save(state, PLAYER, now=1.0))
    assert not result.state.needs_save
    assert not result.state.needs_cloud_save


def test_remote_failure_keeps_local_save():
    persistence, local, cloud = coordinator()
    cloud.failure = RemoteStoreError("offline", RemoteStoreError.NETWORK)
    result = run(persistence.save(progressed(), PLAYER, force_remote=True, now=5.0))
    assert result.local_ok
    assert result.remote_attempted and not result.remote_ok
    assert result.message == RemoteStoreError.MESSAGES[RemoteStoreError.NETWORK]
    assert decode_snapshot(local.data[KEY]).coins == 250


def test_local_failure_is_reported_not_raised():
    persistence = PersistenceCoordinator(BrokenLocal(), MemoryRemoteStore(), storage_key=KEY)
    result = run(persistence.save(progressed(), ANONYMOUS, now=5.0))
    assert not result.local_ok


def test_empty_game_never_overwrites_cloud_progress():
    persistence, _, cloud = coordinator()
    put_remote(cloud, progressed(rebirths=3, last_saved=1.0))
    result = run(persistence.save(fresh(), PLAYER, force_remote=True, now=99.0))
    assert result.remote_ok
    assert cloud.upserts == 0
    assert decode_snapshot(cloud.records["player-1"].game_data).rebirths == 3


def test_row_id_kept_on_update():
    persistence, _, cloud = coordinator()
    run(persistence.save(progressed(), PLAYER, force_remote=True, now=1.0))
    first = cloud.records["player-1"].row_id
    run(persistence.save(progressed(), PLAYER, force_remote=True, now=2.0))
    assert cloud.records["player-1"].row_id == first
    assert cloud.upserts == 2


# ── load ──

def test_nothing_stored_gives_default():
    persistence, _, _ = coordinator()
    result = run(persistence.load(PLAYER, now=42.0))
    assert result.source == "default"
    assert result.state.coins == 0
    assert result.state.last_saved == 42.0


def test_local_only_without_session():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(progressed(last_saved=5.0)))
    put_remote(cloud, progressed(coins=999, last_saved=50.0))
    result = run(persistence.load(ANONYMOUS, force_reload=True))
    assert result.source == "local"
    assert result.state.coins == 250


def test_newer_remote_wins_forced_load():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(progressed(last_saved=100.0)))
    remote_state = progressed(coins=7_777, gold_coins=2, last_saved=200.0)
    put_remote(cloud, remote_state)

    result = run(persistence.load(PLAYER, force_reload=True, now=300.0))
    assert result.source == "remote"
    assert result.state == decode_snapshot(encode_snapshot(remote_state))
    assert decode_snapshot(local.data[KEY]).coins == 7_777


def test_newer_local_wins_and_updates_cloud():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(progressed(coins=10, last_saved=300.0)))
    put_remote(cloud, progressed(coins=20, last_saved=200.0))
    result = run(persistence.load(PLAYER, force_reload=True, now=400.0))
    assert result.source == "local"
    assert result.state.coins == 10
    assert decode_snapshot(cloud.records["player-1"].game_data).coins == 10


def test_tie_goes_to_local():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(progressed(coins=10, last_saved=300.0)))
    put_remote(cloud, progressed(coins=20, last_saved=300.0))
    result = run(persistence.load(PLAYER, force_reload=True))
    assert result.state.coins == 10
    assert cloud.upserts == 0


def test_empty_local_save_defers_to_cloud_even_if_newer():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(fresh(last_saved=900.0)))
    put_remote(cloud, progressed(rebirths=2, last_saved=100.0))
    result = run(persistence.load(PLAYER, force_reload=True, now=1_000.0))
    assert result.source == "remote"
    assert result.state.rebirths == 2
    assert cloud.upserts == 0
    assert decode_snapshot(cloud.records["player-1"].game_data).rebirths == 2


def test_checkpoint_keeps_save_time():
    persistence, local, _ = coordinator()
    assert persistence.checkpoint(progressed(last_saved=42.0, version=7))
    saved = decode_snapshot(local.data[KEY])
    assert saved.last_saved == 42.0
    assert saved.version == 7


def test_remote_fetched_when_local_missing():
    persistence, local, cloud = coordinator()
    put_remote(cloud, progressed(coins=55, last_saved=9.0))
    result = run(persistence.load(PLAYER))
    assert result.source == "remote"
    assert decode_snapshot(local.data[KEY]).coins == 55


def test_just_logged_in_checks_remote():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(progressed(last_saved=1.0)))
    put_remote(cloud, progressed(coins=31, last_saved=2.0))
    fresh_login = replace(PLAYER, just_logged_in=True)
    assert run(persistence.load(fresh_login)).state.coins == 31
    assert run(persistence.load(PLAYER)).state.coins == 31


def test_corrupt_local_falls_back():
    persistence, local, _ = coordinator()
    local.set(KEY, b"{broken")
    result = run(persistence.load(ANONYMOUS, now=3.0))
    assert result.source == "default"


def test_remote_failure_on_load_uses_local():
    persistence, local, cloud = coordinator()
    local.set(KEY, encode_snapshot(progressed(last_saved=1.0)))
    cloud.failure = RemoteStoreError("table missing", RemoteStoreError.NOT_PROVISIONED)
    result = run(persistence.load(PLAYER, force_reload=True))
    assert result.source == "local"
    assert result.message == RemoteStoreError.MESSAGES[RemoteStoreError.NOT_PROVISIONED]


# ── force sync ──

def test_force_sync_requires_session():
    persistence, _, _ = coordinator()
    result = run(persistence.force_sync(progressed(), ANONYMOUS, now=1.0))
    assert result.state is None
    assert result.message == "Sign in to sync with the cloud."
    assert result.saved.local_ok


def test_force_sync_up_to_date():
    persistence, _, cloud = coordinator()
    result = run(persistence.force_sync(progressed(), PLAYER, now=50.0))
    assert result.message == "Already up to date."
    assert result.state is None
    assert cloud.upserts == 1


def test_force_sync_adopts_strictly_newer_cloud():
    persistence, local, cloud = coordinator()
    put_remote(cloud, progressed(rebirths=1, last_saved=200.0))
    result = run(persistence.force_sync(fresh(), PLAYER, now=100.0))
    assert result.message == "Loaded newer cloud save."
    assert result.state.rebirths == 1
    assert decode_snapshot(local.data[KEY]).rebirths == 1


def test_force_sync_reports_remote_failure():
    persistence, _, cloud = coordinator()
    cloud.failure = RemoteStoreError("denied", RemoteStoreError.PERMISSION)
    result = run(persistence.force_sync(progressed(), PLAYER, now=1.0))
    assert result.state is None
    assert result.message == RemoteStoreError.MESSAGES[RemoteStoreError.PERMISSION]


# ── misc ──

def test_has_newer_remote():
    persistence, _, cloud = coordinator()
    assert not run(persistence.has_newer_remote(PLAYER, 10.0))
    put_remote(cloud, progressed(last_saved=20.0))
    assert run(persistence.has_newer_remote(PLAYER, 10.0))
    assert not run(persistence.has_newer_remote(PLAYER, 20.0))
    assert not run(persistence.has_newer_remote(ANONYMOUS, 0.0))


def test_delete_remote():
    persistence, _, cloud = coordinator()
    put_remote(cloud, progressed())
    assert run(persistence.delete_remote(PLAYER))
    assert "player-1" not in cloud.records
    cloud.failure = RemoteStoreError("offline", RemoteStoreError.NETWORK)
    assert not run(persistence.delete_remote(PLAYER))


def test_identity_timeout_means_local_only():
    async def slow():
        await asyncio.sleep(5)
        return PLAYER

    assert run(resolve_identity(slow, timeout=0.01)) == ANONYMOUS


def test_identity_failure_means_local_only():
    async def broken():
        raise RuntimeError("auth service down")

    assert run(resolve_identity(broken, timeout=1.0)) == ANONYMOUS
    assert run(resolve_identity(None, timeout=1.0)) == ANONYMOUS


def test_unknown_error_code_maps_to_unknown():
    error = RemoteStoreError("weird", "teapot")
    assert error.code == RemoteStoreError.UNKNOWN
