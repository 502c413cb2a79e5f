"""
Decoding of replikator JSON output: only non-JSON (or non-object) documents
fail; individual fields of the wrong shape fall back to defaults.
"""

from __future__ import annotations

import json

import pytest

from replikator_exporter.core.errors import DecodeError
from replikator_exporter.state.decoder import GlobalState, Snapshot, decode_snapshot
from tests.helpers import load_asset

pytestmark = [pytest.mark.unit]


def test_decodes_recorded_status():
    snap = decode_snapshot(load_asset("with-replication-lags.json"))
    gs = snap.global_state

    assert gs.replication_state == "Running"
    assert gs.state_label == "running"
    assert gs.replication_lag == "5"
    assert gs.replication_lags == {"worst": "5", "aurora": "0", "mysql-rds": "5"}
    assert gs.disk_capacity == "536870912000"
    assert gs.memory_free == "34359738368"

    assert [i.instance_id for i in gs.instances] == ["replica-01", "replica-02"]
    assert [i.state_label for i in gs.instances] == ["running", "draining"]
    assert gs.instances[1].memory_used == "2147483648"


def test_decodes_backup_listing():
    snap = decode_snapshot(load_asset("backups.json"))
    assert len(snap.backups) == 10
    first = snap.backups[0]
    assert first.instance_id == "backup-20241225-1600"
    assert first.properties.creation_time == "1735142404"


def test_accepts_bytes():
    snap = decode_snapshot(load_asset("mysql-stopped.json").encode("utf-8"))
    assert snap.global_state.state_label == "stopped"


def test_missing_fields_default_to_empty_string():
    snap = decode_snapshot('{"DatabaseGlobalState": {"eReplicationState": "Stopped"}}')
    gs = snap.global_state
    assert gs.replication_lag == ""
    assert gs.disk_capacity == ""
    assert gs.replication_lags == {}
    assert gs.instances == []


def test_empty_object_decodes_to_defaults():
    snap = decode_snapshot("{}")
    assert snap.global_state == GlobalState()
    assert snap.global_state.state_label == ""


@pytest.mark.parametrize("raw", ["", "not json", '{"DatabaseGlobalState": ', "\x00"])
def test_invalid_json_raises(raw):
    with pytest.raises(DecodeError):
        decode_snapshot(raw)


@pytest.mark.parametrize("raw", ["[]", '"text"', "42", "null"])
def test_non_object_document_raises(raw):
    with pytest.raises(DecodeError):
        decode_snapshot(raw)


def test_decode_error_keeps_preview():
    with pytest.raises(DecodeError) as ei:
        decode_snapshot("garbage" * 100)
    assert ei.value.raw_preview.startswith("garbage")
    assert len(ei.value.raw_preview) <= 120


def test_mismatched_scalar_fields_become_empty_strings():
    doc = {
        "DatabaseGlobalState": {
            "eReplicationState": "Running",
            "iReplicationLag": 5,
            "sTotalStorageCapacity": None,
            "sTotalMemCapacity": {"value": "1"},
            "sTotalMemFree": ["1"],
            "sTotalStorageFree": True,
        }
    }
    gs = decode_snapshot(json.dumps(doc)).global_state
    assert gs.replication_state == "Running"
    assert gs.replication_lag == ""
    assert gs.disk_capacity == ""
    assert gs.memory_capacity == ""
    assert gs.memory_free == ""
    assert gs.disk_free == ""


def test_mismatched_containers_default_to_empty():
    doc = {
        "DatabaseGlobalState": {
            "DatabaseInstanceState": {"not": "a list"},
            "ReplicationLags": ["worst", "5"],
        }
    }
    gs = decode_snapshot(json.dumps(doc)).global_state
    assert gs.instances == []
    assert gs.replication_lags == {}


def test_global_state_of_wrong_type_defaults():
    snap = decode_snapshot('{"DatabaseGlobalState": "oops"}')
    assert snap == Snapshot()


def test_non_object_instances_become_empty_entries():
    doc = {
        "DatabaseGlobalState": {
            "DatabaseInstanceState": [
                "junk",
                7,
                {"DatabaseProperties": {"sInstanceId": "replica-01"}, "eState": "Running"},
                {"DatabaseProperties": "junk", "eState": 1},
            ]
        }
    }
    instances = decode_snapshot(json.dumps(doc)).global_state.instances
    assert len(instances) == 4
    assert [i.instance_id for i in instances] == ["", "", "replica-01", ""]
    assert instances[0].state == ""
    assert instances[3].state == ""


def test_channel_lag_values_of_wrong_type_become_empty():
    doc = {"DatabaseGlobalState": {"ReplicationLags": {"worst": 5, "aurora": "0"}}}
    lags = decode_snapshot(json.dumps(doc)).global_state.replication_lags
    assert lags == {"worst": "", "aurora": "0"}


def test_unknown_fields_are_ignored():
    doc = {"DatabaseGlobalState": {"eReplicationState": "Running", "sSomethingNew": {"x": 1}}, "Extra": []}
    assert decode_snapshot(json.dumps(doc)).global_state.replication_state == "Running"
