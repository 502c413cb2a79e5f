from __future__ import annotations

"""
replikator_exporter.state.decoder
=================================

Typed view of the replikator `--output json` status dump.

The tool emits every value as a string and omits fields freely depending on
the replication state, so decoding is permissive field by field:
- unknown fields are ignored;
- missing fields default to "" (empty object / empty list for containers);
- a field of the wrong JSON type is replaced by its default instead of
  failing the whole document.

Only text that is not JSON at all (or whose top level is not an object)
raises `DecodeError`.

The same document shape is used for `--list` and `--list-backups`; in the
backup listing each instance entry describes one backup.
"""

import json
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from ..core.errors import DecodeError

__all__ = [
    "BackupEntry",
    "DatabaseProperties",
    "GlobalState",
    "InstanceState",
    "Snapshot",
    "decode_snapshot",
]

_PREVIEW_CHARS = 120


# --------------------------------------------------------------------------- #
# Lenient field types
# --------------------------------------------------------------------------- #


def _as_str(v: Any) -> str:
    return v if isinstance(v, str) else ""


def _as_object(v: Any) -> dict[str, Any]:
    return v if isinstance(v, dict) else {}


def _as_object_list(v: Any) -> list[dict[str, Any]]:
    if not isinstance(v, list):
        return []
    return [_as_object(item) for item in v]


def _as_str_map(v: Any) -> dict[str, str]:
    if not isinstance(v, dict):
        return {}
    return {str(k): _as_str(x) for k, x in v.items()}


LooseStr = Annotated[str, BeforeValidator(_as_str)]
StrMap = Annotated[dict[str, str], BeforeValidator(_as_str_map)]


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


# --------------------------------------------------------------------------- #
# Models
# --------------------------------------------------------------------------- #


class DatabaseProperties(_Lenient):
    instance_id: LooseStr = Field(default="", alias="sInstanceId")
    creation_time: LooseStr = Field(default="", alias="sCreationTime")


class InstanceState(_Lenient):
    """One replica (live listing) or one backup (backup listing)."""

    properties: Annotated[DatabaseProperties, BeforeValidator(_as_object)] = Field(
        default_factory=DatabaseProperties, alias="DatabaseProperties"
    )
    state: LooseStr = Field(default="", alias="eState")
    disk_usage: LooseStr = Field(default="", alias="sSizeTotal")
    memory_allocated: LooseStr = Field(default="", alias="sMemAllocated")
    memory_used: LooseStr = Field(default="", alias="sMemUsed")

    @property
    def instance_id(self) -> str:
        return self.properties.instance_id

    @property
    def state_label(self) -> str:
        return self.state.lower()


BackupEntry = InstanceState


class GlobalState(_Lenient):
    instances: Annotated[list[InstanceState], BeforeValidator(_as_object_list)] = Field(
        default_factory=list, alias="DatabaseInstanceState"
    )
    replication_state: LooseStr = Field(default="", alias="eReplicationState")
    replication_lag: LooseStr = Field(default="", alias="iReplicationLag")
    replication_lags: StrMap = Field(default_factory=dict, alias="ReplicationLags")
    replication_disk_usage: LooseStr = Field(default="", alias="sReplicationDiskUsage")
    disk_capacity: LooseStr = Field(default="", alias="sTotalStorageCapacity")
    disk_free: LooseStr = Field(default="", alias="sTotalStorageFree")
    memory_capacity: LooseStr = Field(default="", alias="sTotalMemCapacity")
    memory_free: LooseStr = Field(default="", alias="sTotalMemFree")

    @property
    def state_label(self) -> str:
        return self.replication_state.lower()


class Snapshot(_Lenient):
    """Decoded output of a single tool invocation; lives for one scrape."""

    global_state: Annotated[GlobalState, BeforeValidator(_as_object)] = Field(
        default_factory=GlobalState, alias="DatabaseGlobalState"
    )

    @property
    def backups(self) -> list[BackupEntry]:
        return self.global_state.instances


# --------------------------------------------------------------------------- #
# Entry point
# --------------------------------------------------------------------------- #


def decode_snapshot(raw: str | bytes) -> Snapshot:
    """
    Decode raw tool output into a `Snapshot`.

    Raises:
        DecodeError: the text is not JSON, or the document is not a JSON object.
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    preview = raw[:_PREVIEW_CHARS]
    try:
        doc = json.loads(raw)
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"tool output is not valid JSON: {e}", raw_preview=preview) from e
    if not isinstance(doc, dict):
        raise DecodeError(
            f"tool output must be a JSON object, got {type(doc).__name__}",
            raw_preview=preview,
        )
    return Snapshot.model_validate(doc)
