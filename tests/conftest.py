"""Shared test fixtures."""

import pytest

from fakes import FakeHubDB, FakeSession, MemorySheet
from hubdb_client import HubDBClient
from sheet_records import Record
from snapshot_store import JsonFileSnapshotStore
from sync_status import StatusRecorder


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    """Rate-limit delays are real sleeps; tests skip them."""
    sleeps = []
    monkeypatch.setattr("time.sleep", lambda seconds: sleeps.append(seconds))
    return sleeps


@pytest.fixture
def sheet():
    return MemorySheet()


@pytest.fixture
def recorder(sheet):
    return StatusRecorder(sheet)


@pytest.fixture
def hubdb():
    return FakeHubDB()


@pytest.fixture
def session(hubdb):
    return FakeSession(hubdb)


@pytest.fixture
def client(session):
    return HubDBClient('https://example.test/_hcms/api/sync', session=session, max_retries=2)


@pytest.fixture
def store(tmp_path):
    return JsonFileSnapshotStore(str(tmp_path / 'state.json'))


def make_record(unique_id, position=4, remote_id=None, **fields):
    defaults = {
        'dateTime': '2026-01-10 09:00',
        'category': "Men's Singles",
        'stage': 'Quarterfinal',
        'player1': 'Tan',
        'player2': 'Lee',
        'results': '',
        'venue': 'Kallang',
    }
    defaults.update(fields)
    return Record(unique_id=unique_id, fields=defaults, remote_id=remote_id, position=position)
