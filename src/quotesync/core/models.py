"""
Record and pending-mutation models.

Wire format is camelCase JSON (``createdAt``, ``localId``, ``tempId``); the
Python side uses snake_case attributes. Inputs are lenient about the
identifier spellings the remote store has used over time (``_id`` for the
record id, ``ref`` for the reference, ``statement`` for a statement's text,
``id`` for a statement's local id).

Identifier model:

- ``id`` is authoritative and assigned by the remote store.
- ``temp_id`` is a ``temp_*`` placeholder for records created offline.
- ``Statement.local_id`` identifies a statement inside a record.

:func:`resolve_record` is the single lookup used everywhere a caller hands in
"some id" for a record: authoritative id first, then temporary id, then a
nested statement id.

Tags:
    models, pydantic, records, pending-mutations, quotesync
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

DEFAULT_SPEAKER = "Śrīla Prabhupāda"


class Collection(str, Enum):
    """Enumerated quote categories accepted by the remote store."""

    MIX = "Mix"
    BHAGAVAD_GITA = "Bhagavad-gītā As It Is"
    EMPOWERED_ACHARYA = "The Empowered Ācārya"
    SRIMAD_BHAGAVATAM = "Śrīmad-Bhāgavatam"
    CAITANYA_CARITAMRTA = "Śrī Caitanya-caritāmṛta"
    SUPERMAN = "Superman"


class WireModel(BaseModel):
    """Base for models persisted locally and exchanged with the remote store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Statement(WireModel):
    text: str = Field(validation_alias=AliasChoices("text", "statement"))
    tags: set[str] = Field(default_factory=set)
    keywords: set[str] = Field(default_factory=set)
    local_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("localId", "local_id", "id"),
        serialization_alias="localId",
    )

    @field_serializer("tags", "keywords")
    def _sorted(self, value: set[str]) -> list[str]:
        return sorted(value)


class Record(WireModel):
    """A quote entity.

    ``pending_sync`` marks a local copy whose latest change has not been
    confirmed by the remote store yet. It is never sent to the remote.
    """

    id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("id", "_id"),
        serialization_alias="id",
    )
    temp_id: str | None = None
    reference: str = Field(
        validation_alias=AliasChoices("reference", "ref"),
        serialization_alias="reference",
    )
    speaker: str = DEFAULT_SPEAKER
    collection: Collection = Collection.MIX
    statements: list[Statement] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pending_sync: bool = False

    @property
    def key(self) -> str | None:
        """Effective identifier: authoritative id, else temporary id."""
        return self.id or self.temp_id

    def to_remote(self) -> dict[str, Any]:
        """Wire form with identifiers and local-only markers stripped."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude={"id", "temp_id", "pending_sync"},
        )

    def with_patch(self, patch: Mapping[str, Any], updated_at: datetime) -> Record:
        """Return a copy with a normalized wire patch applied."""
        data = self.to_wire()
        data.update(patch)
        data["updatedAt"] = updated_at.isoformat()
        return Record.model_validate(data)


# Patch keys that may never be changed through update()
_IMMUTABLE_FIELDS = {"id", "temp_id", "pending_sync", "created_at"}


def _patch_aliases() -> dict[str, str]:
    """Map every accepted spelling of a mutable field to its wire alias."""
    aliases: dict[str, str] = {}
    for name, info in Record.model_fields.items():
        wire = info.serialization_alias or info.alias or name
        spellings = {name, wire}
        if isinstance(info.validation_alias, AliasChoices):
            spellings.update(c for c in info.validation_alias.choices if isinstance(c, str))
        for spelling in spellings:
            aliases[spelling] = "" if name in _IMMUTABLE_FIELDS else wire
    return aliases


def normalize_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a caller-supplied patch into wire keys.

    Raises:
        KeyError: for unknown fields
        ValueError: for identifier or bookkeeping fields
    """
    aliases = _patch_aliases()
    normalized: dict[str, Any] = {}
    for key, value in patch.items():
        if key not in aliases:
            raise KeyError(key)
        wire = aliases[key]
        if not wire:
            raise ValueError(f"{key} cannot be changed")
        if wire == "statements":
            value = [
                s.to_wire() if isinstance(s, Statement) else Statement.model_validate(s).to_wire()
                for s in value
            ]
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        normalized[wire] = value
    return normalized


def merge_patches(earlier: Mapping[str, Any], later: Mapping[str, Any]) -> dict[str, Any]:
    """Field-wise last-writer-wins merge of two normalized patches."""
    merged = dict(earlier)
    merged.update(later)
    return merged


def check_draft(record: Record) -> str | None:
    """Return a problem description if *record* cannot be submitted, else None."""
    if not record.reference.strip():
        return "Please provide reference and at least one statement"
    if not record.statements:
        return "Please provide reference and at least one statement"
    return None


def resolve_record(records: Iterable[Record], identifier: str) -> Record | None:
    """Locate a record by any of its identifiers.

    Precedence: authoritative id > temporary id > nested statement local id.
    Returns None when nothing matches.
    """
    records = list(records)
    for record in records:
        if record.id == identifier:
            return record
    for record in records:
        if record.temp_id == identifier:
            return record
    for record in records:
        if any(s.local_id == identifier for s in record.statements):
            return record
    return None


# =============================================================================
# PENDING MUTATIONS
# =============================================================================


class PendingCreate(WireModel):
    draft: Record
    temp_id: str
    created_at: datetime


class PendingUpdate(WireModel):
    target_id: str
    patch: dict[str, Any]
    updated_at: datetime


class PendingDelete(WireModel):
    target_id: str
    deleted_at: datetime
    original: Record | None = None


class DeletedEntry(WireModel):
    """One slot of the recently-deleted ring."""

    record: Record
    deleted_at: datetime
    source_id: str


__all__ = [
    "Collection",
    "DEFAULT_SPEAKER",
    "Statement",
    "Record",
    "PendingCreate",
    "PendingUpdate",
    "PendingDelete",
    "DeletedEntry",
    "normalize_patch",
    "merge_patches",
    "check_draft",
    "resolve_record",
]
