"""Tests for durable registry state."""

import json

import pytest

from autobackup_watch.exceptions import CorruptStateError, StateStoreError
from autobackup_watch.sync.models import UNKNOWN_FINGERPRINT, TrackedFile
from autobackup_watch.sync.state_store import StateStore

from conftest import BASE_MTIME

HASH_A = "a" * 64
HASH_B = "0123456789abcdef" * 4


@pytest.fixture
def entries():
    return [
        TrackedFile("a.txt", HASH_A, BASE_MTIME, 1),
        TrackedFile("report final.pdf", HASH_B, BASE_MTIME + 7, 12),
    ]


def test_missing_state_returns_none(state_store):
    assert not state_store.exists()
    assert state_store.load() is None


def test_save_and_load(state_store, entries):
    state_store.save(entries)
    assert state_store.load() == entries


def test_saved_document_layout(state_store, entries):
    state_store.save(entries)
    text = state_store.state_file.read_text(encoding='utf-8')
    data = json.loads(text)

    assert data['count'] == 2
    assert text.index('"count"') < text.index('"files"')
    assert data['files'][0] == {
        'name': 'a.txt',
        'fingerprint': HASH_A,
        'last_observed_mtime': BASE_MTIME,
        'version': 1,
    }


def test_save_replaces_previous_state_without_leftovers(state_store, entries):
    state_store.save(entries)
    state_store.save(entries[:1])

    assert state_store.load() == entries[:1]
    leftovers = [p.name for p in state_store.state_file.parent.iterdir()
                 if p.name != state_store.state_file.name]
    assert leftovers == []


def test_empty_registry_round_trip(state_store):
    state_store.save([])
    assert state_store.load() == []


def test_unknown_keys_are_ignored(state_store):
    state_store.state_file.write_text(json.dumps({
        'format': 2,
        'count': 1,
        'written_by': 'a newer release',
        'files': [{
            'name': 'a.txt',
            'fingerprint': HASH_A,
            'last_observed_mtime': BASE_MTIME,
            'version': 3,
            'size': 10,
        }],
    }), encoding='utf-8')

    assert state_store.load() == [TrackedFile("a.txt", HASH_A, BASE_MTIME, 3)]


def test_duplicate_names_load_for_registry_to_reject(state_store):
    state_store.state_file.write_text(
        "2\na.txt|%s|%d|1\na.txt|%s|%d|2\n" % (HASH_A, BASE_MTIME, HASH_B, BASE_MTIME),
        encoding='utf-8',
    )
    assert [f.name for f in state_store.load()] == ["a.txt", "a.txt"]


@pytest.mark.parametrize("content", [
    "{not json",
    json.dumps([1, 2, 3]),
    json.dumps({'count': 1}),
    json.dumps({'count': 2, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': 1, 'version': 1},
    ]}),
    json.dumps({'files': []}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'version': 1},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': 'not-a-hash', 'last_observed_mtime': 1, 'version': 1},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': 'soon', 'version': 1},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': '', 'fingerprint': HASH_A, 'last_observed_mtime': 1, 'version': 1},
    ]}),
    json.dumps({'count': 1, 'files': ["a.txt"]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': 1.9, 'version': 2.7},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': 1, 'version': True},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': "5", 'version': 1},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': 1, 'version': "5"},
    ]}),
    json.dumps({'count': 1, 'files': [
        {'name': 'a.txt', 'fingerprint': HASH_A, 'last_observed_mtime': None, 'version': 1},
    ]}),
])
def test_malformed_json_state_is_corrupt(state_store, content):
    state_store.state_file.write_text(content, encoding='utf-8')
    with pytest.raises(CorruptStateError):
        state_store.load()


def test_legacy_line_format_is_readable(state_store):
    state_store.state_file.write_text(
        "2\na.txt|%s|%d|1\nb.md|%s|%d|4\n" % (HASH_A, BASE_MTIME, HASH_B, BASE_MTIME + 1),
        encoding='utf-8',
    )

    assert state_store.load() == [
        TrackedFile("a.txt", HASH_A, BASE_MTIME, 1),
        TrackedFile("b.md", HASH_B, BASE_MTIME + 1, 4),
    ]


def test_legacy_state_is_rewritten_as_json(state_store):
    state_store.state_file.write_text("1\na.txt|%s|%d|2\n" % (HASH_A, BASE_MTIME),
                                      encoding='utf-8')
    state_store.save(state_store.load())
    assert json.loads(state_store.state_file.read_text(encoding='utf-8'))['count'] == 1


@pytest.mark.parametrize("content", [
    "",
    "two\n",
    "2\na.txt|%s|%d|1\n" % (HASH_A, BASE_MTIME),
    "1\na.txt|%s|%d\n" % (HASH_A, BASE_MTIME),
    "1\na.txt|%s|%d|x\n" % (HASH_A, BASE_MTIME),
    "1\na.txt|%s|%d|2.7\n" % (HASH_A, BASE_MTIME),
    "1\na.txt|nothex|%d|1\n" % BASE_MTIME,
])
def test_malformed_legacy_state_is_corrupt(state_store, content):
    state_store.state_file.write_text(content, encoding='utf-8')
    with pytest.raises(CorruptStateError):
        state_store.load()


def test_binary_garbage_is_corrupt(state_store):
    state_store.state_file.write_bytes(b"\xff\xfe\x00garbage")
    with pytest.raises(CorruptStateError):
        state_store.load()


def test_save_failure_raises_and_cleans_up(tmp_path, entries):
    target = tmp_path / "state"
    target.mkdir()
    store = StateStore(target)

    with pytest.raises(StateStoreError):
        store.save(entries)
    assert [p.name for p in tmp_path.iterdir()] == ["state"]


def test_quarantine_moves_state_aside(state_store, entries):
    state_store.save(entries)

    moved = state_store.quarantine()

    assert not state_store.exists()
    assert moved.exists()
    assert moved.name.startswith(".autobackup_state.corrupt-")
    assert state_store.quarantine() is None


def test_legacy_record_without_fingerprint_loads_as_unknown(state_store):
    # Older releases wrote an empty hash for files they couldn't read
    state_store.state_file.write_text(
        "2\na.txt|%s|%d|1\nlocked.db||%d|3\n" % (HASH_A, BASE_MTIME, BASE_MTIME),
        encoding='utf-8',
    )

    files = state_store.load()

    assert files[1] == TrackedFile("locked.db", UNKNOWN_FINGERPRINT, BASE_MTIME, 3)


def test_unknown_fingerprint_survives_save_and_load(state_store):
    entries = [TrackedFile("locked.db", UNKNOWN_FINGERPRINT, BASE_MTIME, 3)]
    state_store.save(entries)
    assert state_store.load() == entries
