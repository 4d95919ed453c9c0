from __future__ import annotations


class PersistenceError(Exception):
    """Base for every storage collaborator failure."""


class LocalStoreError(PersistenceError):
    pass


class RemoteStoreError(PersistenceError):
    NETWORK = "network"
    PERMISSION = "permission"
    NOT_PROVISIONED = "not_provisioned"
    UNKNOWN = "unknown"

    # Shown to the player; local progress is never lost on a remote failure.
    MESSAGES = {
        NETWORK: "Could not reach the cloud. Progress is saved on this device.",
        PERMISSION: "Cloud save was refused. Try signing in again.",
        NOT_PROVISIONED: "Cloud save is not set up yet. Progress is saved on this device.",
        UNKNOWN: "Cloud save failed. Progress is saved on this device.",
    }

    def __init__(self, message: str, code: str = UNKNOWN) -> None:
        super().__init__(message)
        self.code = code if code in self.MESSAGES else self.UNKNOWN

    @property
    def user_message(self) -> str:
        return self.MESSAGES[self.code]


class SnapshotDecodeError(PersistenceError):
    """A stored snapshot could not be parsed into a GameState."""
