"""Persisted ledger state (the lock file schema)."""

from __future__ import annotations

import hashlib
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from contract.markers import LOCK_SCHEMA_VERSION, MAX_REFERENCE_ID, MIN_REFERENCE_ID

ReferenceId = Annotated[int, Field(ge=MIN_REFERENCE_ID, le=MAX_REFERENCE_ID)]


class Fingerprint(BaseModel):
    """Content fingerprint used to decide whether a cache entry is valid."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    sha256: str
    length: int = Field(ge=0)

    @classmethod
    def of(cls, text: str) -> Fingerprint:
        data = text.encode("utf-8")
        return cls(sha256=hashlib.sha256(data).hexdigest(), length=len(data))


class FileEntry(BaseModel):
    """Identifiers last observed in a fully referenced file."""

    model_config = ConfigDict(extra="forbid")

    sha256: str
    length: int = Field(ge=0)
    references: list[ReferenceId] = Field(default_factory=list)
    ignored: int = Field(default=0, ge=0)

    def matches(self, fingerprint: Fingerprint) -> bool:
        return self.sha256 == fingerprint.sha256 and self.length == fingerprint.length


class LockState(BaseModel):
    """Schema for the logref.lock file."""

    model_config = ConfigDict(extra="forbid")

    version: int = Field(default=LOCK_SCHEMA_VERSION)
    next_id: int = Field(default=0, ge=0, le=MAX_REFERENCE_ID)
    # Digest of the extraction settings the cached entries were recorded under.
    config_digest: str | None = None
    files: dict[str, FileEntry] = Field(default_factory=dict)


__all__ = ["FileEntry", "Fingerprint", "LockState"]
