import pytest

from camara_crawler.errors import PersistenceConflictError
from camara_crawler.sink import DEPUTY, PROPOSITION, VOTE, EntitySpec


def test_upsert_is_idempotent(sink, db):
    fields = {"name": "Fulano", "party": "PT", "state": "SP"}
    sink.upsert(DEPUTY, 204554, fields)
    sink.upsert(DEPUTY, 204554, fields)

    docs = db["deputies"].docs
    assert len(docs) == 1
    assert docs[0] == {"deputy_id": 204554, "name": "Fulano", "party": "PT", "state": "SP"}


def test_partial_write_keeps_other_fields(sink, db):
    sink.upsert(DEPUTY, 1, {"name": "A", "email": "a@camara.leg.br", "office": {"room": "301", "floor": "3"}})
    sink.upsert(DEPUTY, 1, {"name": "A.", "office": {"room": "410"}})

    doc = db["deputies"].get(deputy_id=1)
    assert doc["name"] == "A."
    assert doc["email"] == "a@camara.leg.br"
    # a provided nested field is replaced as a whole
    assert doc["office"] == {"room": "410"}


def test_key_contradicting_field_is_rejected(sink, db):
    with pytest.raises(PersistenceConflictError) as info:
        sink.upsert(DEPUTY, 1, {"deputy_id": 2, "name": "A"})
    assert info.value.entity == DEPUTY
    assert info.value.key == 1
    assert db["deputies"].docs == []


def test_store_error_becomes_conflict(sink, db):
    db["deputies"].fail_filters.append({"deputy_id": 9})
    with pytest.raises(PersistenceConflictError):
        sink.upsert(DEPUTY, 9, {"name": "X"})


def test_bulk_upsert_isolates_malformed_record(sink, db):
    items = [
        (1, {"name": "A"}),
        (2, "not a mapping"),
        (3, {"name": "C"}),
    ]
    result = sink.bulk_upsert(DEPUTY, items)

    assert result.attempted == 3
    assert result.written == 2
    assert not result.ok
    assert [(f.index, f.key) for f in result.failures] == [(1, 2)]
    assert sorted(d["deputy_id"] for d in db["deputies"].docs) == [1, 3]


def test_bulk_upsert_maps_write_errors_to_records(sink, db):
    db["deputies"].fail_filters.append({"deputy_id": 3})
    items = [(None, {"name": "no key"}), (2, {"name": "B"}), (3, {"name": "C"}), (4, {"name": "D"})]

    result = sink.bulk_upsert(DEPUTY, items)

    assert [(f.index, f.key) for f in result.failures] == [(0, None), (2, 3)]
    assert result.written == 2
    assert sorted(d["deputy_id"] for d in db["deputies"].docs) == [2, 4]
    assert db["deputies"].bulk_calls == 1


def test_bulk_upsert_with_nothing_valid_skips_the_store(sink, db):
    result = sink.bulk_upsert(DEPUTY, [(None, {})])
    assert result.written == 0
    assert db["deputies"].bulk_calls == 0


def test_composite_vote_key(sink, db):
    key = ("2265603-43", 204554, 2265603)
    sink.upsert(VOTE, key, {"vote": "Sim"})
    sink.upsert(VOTE, {"voting_id": "2265603-43", "deputy_id": 204554, "proposition_id": 2265603}, {"vote": "Não"})
    sink.upsert(VOTE, ("2265603-43", 204555, 2265603), {"vote": "Sim"})

    docs = db["votes"].docs
    assert len(docs) == 2
    assert sink.find(VOTE, key) == {
        "voting_id": "2265603-43",
        "deputy_id": 204554,
        "proposition_id": 2265603,
        "vote": "Não",
    }

    with pytest.raises(PersistenceConflictError):
        sink.upsert(VOTE, ("2265603-43", 204554), {"vote": "Sim"})


def test_key_filter_shapes():
    spec = EntitySpec("x", "xs", ("a", "b"))
    assert spec.key_filter((1, 2)) == {"a": 1, "b": 2}
    assert spec.key_filter({"a": 1, "b": 2, "c": 3}) == {"a": 1, "b": 2}
    with pytest.raises(ValueError):
        spec.key_filter(1)
    with pytest.raises(ValueError):
        spec.key_filter((1, ""))


def test_ensure_indexes_are_unique_on_natural_keys(sink, db):
    sink.ensure_indexes()
    assert db["votes"].indexes == [
        {"keys": [("voting_id", 1), ("deputy_id", 1), ("proposition_id", 1)], "unique": True}
    ]
    assert db["propositions"].indexes[0]["unique"]


def test_find_projection_and_unknown_entity(sink):
    sink.upsert(PROPOSITION, 10, {"title": "PL 1/2020", "remote_version": "2020-01-01T00:00"})
    assert sink.find(PROPOSITION, 10, ["remote_version"]) == {"remote_version": "2020-01-01T00:00"}
    assert sink.find(PROPOSITION, 11) is None
    with pytest.raises(KeyError):
        sink.spec("committee")
