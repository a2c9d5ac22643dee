"""General sync settings schemas."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from cloudsync.providers import Provider


class SyncInterval(StrEnum):
    """Polling cadence in minutes, or manual only."""

    FIVE = "5"
    TEN = "10"
    THIRTY = "30"
    MANUAL = "manual"

    @property
    def minutes(self) -> int | None:
        if self is SyncInterval.MANUAL:
            return None
        return int(self.value)


class PriorityMode(StrEnum):
    """Which side wins when a manual sync runs."""

    LOCAL = "local"
    REMOTE = "remote"
    BIDIRECTIONAL = "bidirectional"


# Option values written by earlier installations.
_LEGACY_PRIORITY_MODES = {"wp": PriorityMode.LOCAL, "cloud": PriorityMode.REMOTE}


class GeneralSettings(BaseModel):
    """Administrator-editable sync options."""

    auto_sync: bool = True
    sync_interval: SyncInterval = SyncInterval.TEN
    priority_mode: PriorityMode = PriorityMode.BIDIRECTIONAL
    root_google: str = Field(default="", max_length=1024)
    root_dropbox: str = Field(default="", max_length=1024)
    root_sharepoint: str = Field(default="", max_length=1024)

    @field_validator("sync_interval", mode="before")
    @classmethod
    def _coerce_interval(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("priority_mode", mode="before")
    @classmethod
    def _coerce_priority(cls, value: object) -> object:
        if isinstance(value, str) and value in _LEGACY_PRIORITY_MODES:
            return _LEGACY_PRIORITY_MODES[value]
        return value

    @field_validator("root_google", "root_dropbox", "root_sharepoint")
    @classmethod
    def _strip_root(cls, value: str) -> str:
        return value.strip()

    @property
    def schedule_minutes(self) -> int | None:
        """Polling interval in minutes, or None when no job should be armed."""
        if not self.auto_sync:
            return None
        return self.sync_interval.minutes

    def root_for(self, provider: Provider) -> str:
        """Configured root folder id/path for *provider*, or "" for the drive root."""
        roots = {
            Provider.GOOGLE: self.root_google,
            Provider.DROPBOX: self.root_dropbox,
            Provider.SHAREPOINT: self.root_sharepoint,
        }
        return roots[provider]
