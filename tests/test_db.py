"""Tests for the report store with a fake database handle."""

from unittest.mock import MagicMock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from fin_recon import db
from fin_recon.config import Settings


class FakeDatabase(dict):
    """Collection name -> MagicMock collection, created on first access."""

    def __missing__(self, name):
        collection = MagicMock(name=name)
        self[name] = collection
        return collection


@pytest.fixture
def fake_db(monkeypatch):
    database = FakeDatabase()
    monkeypatch.setattr(db, "_get_db", lambda: database)
    return database


@pytest.fixture
def no_db(monkeypatch):
    monkeypatch.setattr(db, "_get_db", lambda: None)


def statement(tin, year=2024, month=12, **items):
    return {"TIN": tin, "Y": year, "M": month, "FC": "S0110014", **items}


def written_ops(collection):
    return [op for call in collection.bulk_write.call_args_list for op in call.args[0]]


def test_collection_name():
    assert db.collection_name(2024, 12) == "rep_2024_12"
    assert db.collection_name(2025, 3) == "rep_2025_3"


def test_build_document_adds_metrics():
    doc = db.build_document(statement("12345678", R1195G4=300, R1695G4=150))
    assert doc["TIN"] == "12345678"
    assert doc["R1195G4"] == 300
    assert doc["report_type"] == "short"
    assert doc["metrics"]["current_ratio"] == pytest.approx(2.0)
    assert "updated_at" in doc


def test_upsert_groups_by_period(fake_db):
    records = [statement("11111111"), statement("22222222", month=9), statement("33333333")]
    result = db.upsert_statements(records)

    assert result.written == 3
    assert result.skipped == 0
    assert result.batches == 1
    assert set(fake_db) == {"rep_2024_12", "rep_2024_9"}
    assert len(written_ops(fake_db["rep_2024_12"])) == 2
    assert len(written_ops(fake_db["rep_2024_9"])) == 1


def test_upsert_is_keyed_by_tin(fake_db):
    db.upsert_statements([statement("11111111")])
    op = written_ops(fake_db["rep_2024_12"])[0]
    assert op._filter == {"TIN": "11111111"}
    assert op._upsert is True


def test_upsert_commits_every_batch(fake_db):
    records = [statement(f"{10000000 + i}") for i in range(7)]
    result = db.upsert_statements(records, batch_size=3)
    assert result.written == 7
    assert result.batches == 3
    assert fake_db["rep_2024_12"].bulk_write.call_count == 3


@pytest.mark.parametrize("tin", [None, "", 12345678])
def test_invalid_tin_is_skipped(fake_db, tin):
    result = db.upsert_statements([statement(tin), statement("11111111")])
    assert result.skipped == 1
    assert result.written == 1


def test_upsert_without_store_is_noop(no_db):
    result = db.upsert_statements([statement("11111111")])
    assert result.written == 0
    assert result.batches == 0


def test_get_report(fake_db):
    fake_db["rep_2024_12"].find_one.return_value = {"TIN": "11111111"}
    assert db.get_report("rep_2024_12", "11111111") == {"TIN": "11111111"}
    fake_db["rep_2024_12"].find_one.assert_called_once_with({"TIN": "11111111"}, {"_id": 0})


@pytest.mark.parametrize("period", ["report", "rep_24_12", "rep_2024_12; drop", "system.users"])
def test_get_report_rejects_bad_period(fake_db, period):
    assert db.get_report(period, "11111111") is None
    assert len(fake_db) == 0


def test_get_report_propagates_store_errors(fake_db):
    fake_db["rep_2024_12"].find_one.side_effect = RuntimeError("connection reset")
    with pytest.raises(RuntimeError):
        db.get_report("rep_2024_12", "11111111")


def test_get_report_without_store(no_db):
    assert db.get_report("rep_2024_12", "11111111") is None


@pytest.fixture
def fresh_store(monkeypatch):
    db.reset()
    yield
    db.reset()


def test_store_unavailable_without_uri(monkeypatch, fresh_store):
    monkeypatch.setattr(db, "get_config", lambda: Settings(_env_file=None, mongodb_uri=""))
    assert db.is_available() is False
    assert db.upsert_statements([statement("11111111")]).written == 0


def test_unreachable_store_is_disabled(monkeypatch, fresh_store):
    class Unreachable:
        def __init__(self, uri, **kwargs):
            raise ServerSelectionTimeoutError("no servers found")

    monkeypatch.setattr(db, "get_config", lambda: Settings(_env_file=None, mongodb_uri="mongodb://nowhere"))
    monkeypatch.setattr(db, "MongoClient", Unreachable)
    assert db.is_available() is False
    assert db.get_report("rep_2024_12", "11111111") is None


def test_connection_is_attempted_once(monkeypatch, fresh_store):
    attempts = []

    def connect(settings):
        attempts.append(settings)
        return None

    monkeypatch.setattr(db, "_connect", connect)
    db.is_available()
    db.is_available()
    assert len(attempts) == 1


@pytest.mark.integration
def test_live_round_trip():
    if not db.is_available():
        pytest.skip("MongoDB not configured")
    db.upsert_statements([statement("99999999", year=1999, month=1, R2000G3=100)])
    stored = db.get_report("rep_1999_1", "99999999")
    assert stored["metrics"]["net_revenue"] == 100
