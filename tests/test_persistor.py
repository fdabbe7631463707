import logging

import pytest

from matchboard.config import WIPE_SEASON_START
from matchboard.dedup import DeduplicationGuard, content_hash, match_signature, signature_line
from matchboard.errors import DuplicateMatchError, PersistenceError, ValidationError
from matchboard.identity import IdentityResolver
from matchboard.persistor import MatchPersistor
from tests.helpers import cleanup_db, create_temp_db, row, scoreboard


@pytest.fixture
def db():
    database, db_path = create_temp_db()
    yield database
    cleanup_db(database, db_path)


@pytest.fixture
def resolver(db):
    return IdentityResolver(db)


@pytest.fixture
def persistor(db, resolver):
    return MatchPersistor(db, resolver)


def test_content_hash_is_sha256_hex():
    assert content_hash(b"") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


def test_signature_line_uses_canonical_name():
    assert signature_line(row("Shadow_Fox", "WIN", 5, 3, 2)) == "shadowfox|5/3/2|WIN"


def test_signature_is_order_invariant():
    rows = scoreboard(["Ghost", "Viper"], ["Raven", "Onyx"])
    assert match_signature(rows) == match_signature(list(reversed(rows)))


def test_signature_changes_with_stats():
    a = [row("Ghost", "WIN", 5, 3, 2)]
    b = [row("Ghost", "WIN", 5, 3, 3)]
    assert match_signature(a) != match_signature(b)


def test_persist_writes_match_and_rows(db, persistor):
    rows = scoreboard(["Ghost", "Viper"], ["Raven"])
    match_id = persistor.persist(rows, "hash-1", match_signature(rows))

    results = db.get_match_results(match_id)
    assert len(results) == 3
    assert [r["raw_name"] for r in results] == ["Ghost", "Viper", "Raven"]
    assert {r["result"] for r in results} == {"WIN", "LOSE"}
    assert len(db.get_live_players()) == 3


def test_persist_is_idempotent(db, persistor):
    rows = scoreboard(["Ghost"], ["Raven"])
    signature = match_signature(rows)
    persistor.persist(rows, "hash-1", signature)

    with pytest.raises(DuplicateMatchError):
        persistor.persist(rows, "hash-1", signature)
    with pytest.raises(DuplicateMatchError):
        persistor.persist(list(reversed(rows)), "hash-2", match_signature(list(reversed(rows))))

    assert len(db.get_matches_since(WIPE_SEASON_START)) == 1


def test_failure_rolls_back_new_players_and_cache(db, resolver, monkeypatch):
    persistor = MatchPersistor(db, resolver)
    rows = scoreboard(["Brand New"], ["Also New"])

    def broken_insert(match_id, resolved):
        raise PersistenceError("Failed to insert player results: disk I/O error")

    monkeypatch.setattr(db, "insert_player_results", broken_insert)
    with pytest.raises(PersistenceError):
        persistor.persist(rows, "hash-1", match_signature(rows))

    assert db.get_live_players() == []
    assert not db.match_exists(content_hash="hash-1")
    assert resolver.cache.get("brand new") is None
    assert len(resolver.cache) == 0


def test_known_signature_with_new_image_hash_is_rejected(db, persistor):
    rows = scoreboard(["Ghost"], ["Raven"])
    signature = match_signature(rows)
    persistor.persist(rows, "hash-1", signature)

    guard = DeduplicationGuard(db)
    assert guard.exists(signature=signature)
    with pytest.raises(DuplicateMatchError):
        persistor.persist(rows, "hash-other", signature)


def test_rejected_row_is_logged_with_fingerprint(db, persistor, caplog):
    rows = [row("!!!", "WIN", 1, 0, 0)]
    signature = match_signature(rows)

    with caplog.at_level(logging.WARNING, logger="matchboard.persistor"):
        with pytest.raises(ValidationError):
            persistor.persist(rows, "abcdef0123456789", signature)

    assert "hash=abcdef012345" in caplog.text
    assert f"sig={signature[:12]}" in caplog.text
    assert "rows=1" in caplog.text
    assert not db.match_exists(content_hash="abcdef0123456789")
