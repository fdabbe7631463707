# tests/test_stats.py

from datetime import datetime, timedelta, timezone

import pytest

from matchboard.dedup import match_signature
from matchboard.errors import NotFoundError, ValidationError
from matchboard.identity import IdentityResolver
from matchboard.persistor import MatchPersistor
from matchboard.stats import (
    EXPORT_HEADER,
    PlayerStats,
    SeasonSettings,
    StatsAggregator,
    calculate_kda,
    calculate_win_rate,
    validate_sort_key,
)
from tests.helpers import cleanup_db, create_temp_db, row

SEASON = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestCalculations:
    def test_win_rate(self):
        assert calculate_win_rate(0, 0) == 0.0
        assert calculate_win_rate(3, 4) == 75.0

    def test_kda_floors_deaths_at_one(self):
        assert calculate_kda(5, 0, 3) == 8.0
        assert calculate_kda(6, 3, 3) == 3.0

    def test_validate_sort_key(self):
        assert validate_sort_key("KDA") == "kda"
        assert validate_sort_key(None) == "winrate"
        with pytest.raises(ValidationError):
            validate_sort_key("kills")

    def test_player_stats_to_dict_rounds(self):
        st = PlayerStats(player_id=1, name="Ghost", matches=3, wins=2, losses=1, kills=10, deaths=3, assists=0)
        data = st.to_dict()
        assert data["win_rate"] == 66.67
        assert data["kda"] == 3.33


class TestStatsAggregator:
    @pytest.fixture
    def db(self):
        database, db_path = create_temp_db()
        yield database
        cleanup_db(database, db_path)

    @pytest.fixture
    def record(self, db):
        persistor = MatchPersistor(db, IdentityResolver(db))
        counter = {"n": 0}

        def _record(rows, created_at):
            counter["n"] += 1
            return persistor.persist(rows, f"hash-{counter['n']}", match_signature(rows), created_at=created_at)

        return _record

    @pytest.fixture
    def aggregator(self, db):
        return StatsAggregator(db)

    def _player_id(self, db, canonical):
        return db.get_player_by_canonical(canonical)["player_id"]

    def test_empty_leaderboard(self, aggregator):
        assert aggregator.leaderboard() == []

    def test_totals_and_kda(self, db, aggregator, record):
        record([row("Ghost", "WIN", 5, 0, 3)], SEASON + timedelta(days=1))
        [st] = aggregator.leaderboard()
        assert (st.matches, st.wins, st.losses) == (1, 1, 0)
        assert st.kda == 8.0
        assert st.win_rate == 100.0

    def test_matches_before_season_are_ignored(self, db, aggregator, record):
        record([row("Ghost", "WIN", 1, 1, 1)], SEASON - timedelta(days=1))
        record([row("Ghost", "LOSE", 1, 1, 1)], SEASON + timedelta(days=1))
        [st] = aggregator.leaderboard()
        assert (st.matches, st.wins, st.losses) == (1, 0, 1)

    def test_personal_reset_overrides_season(self, db, aggregator, record):
        record([row("Ghost", "WIN", 2, 1, 0), row("Raven", "LOSE", 1, 2, 0)], datetime(2025, 2, 1, tzinfo=timezone.utc))
        record([row("Ghost", "LOSE", 1, 1, 0), row("Raven", "WIN", 1, 1, 0)], datetime(2025, 4, 1, tzinfo=timezone.utc))
        db.set_player_reset_date("ghost", datetime(2025, 3, 1, tzinfo=timezone.utc))

        by_name = {st.name: st for st in aggregator.leaderboard()}
        assert (by_name["Ghost"].matches, by_name["Ghost"].wins) == (1, 0)
        assert by_name["Raven"].matches == 2

    def test_reset_survives_rename(self, db, aggregator, record):
        record([row("Ghost", "WIN", 2, 1, 0)], datetime(2025, 2, 1, tzinfo=timezone.utc))
        record([row("Ghost", "LOSE", 1, 1, 0)], datetime(2025, 4, 1, tzinfo=timezone.utc))
        db.set_player_reset_date("ghost", datetime(2025, 3, 1, tzinfo=timezone.utc))
        db.rename_player(self._player_id(db, "ghost"), "Phantom", "phantom")

        [st] = aggregator.leaderboard()
        assert st.name == "Phantom"
        assert st.matches == 1

    def test_injected_settings(self, db, aggregator, record):
        record([row("Ghost", "WIN", 1, 1, 0)], datetime(2025, 2, 1, tzinfo=timezone.utc))
        settings = SeasonSettings(season_start=datetime(2025, 6, 1, tzinfo=timezone.utc))
        assert aggregator.leaderboard(settings=settings) == []

    def test_ranking_order_and_tie_breaks(self, db, aggregator, record):
        day = SEASON + timedelta(days=10)
        # Alpha: 2 matches, 50% | Bravo: 2 matches, 50%, higher KDA | Charlie: 1 match, 100%
        record([row("Alpha", "WIN", 1, 1, 0), row("Bravo", "LOSE", 4, 1, 0)], day)
        record([row("Alpha", "LOSE", 1, 1, 0), row("Bravo", "WIN", 4, 1, 0)], day + timedelta(hours=1))
        record([row("Charlie", "WIN", 9, 1, 0)], day + timedelta(hours=2))

        names = [st.name for st in aggregator.leaderboard("winrate")]
        assert names == ["Bravo", "Alpha", "Charlie"]

        names = [st.name for st in aggregator.leaderboard("kda")]
        assert names == ["Bravo", "Alpha", "Charlie"]

    def test_full_tie_falls_back_to_player_id(self, db, aggregator, record):
        day = SEASON + timedelta(days=10)
        record([row("Zulu", "WIN", 1, 1, 0)], day)
        record([row("Yankee", "WIN", 1, 1, 0)], day + timedelta(hours=1))
        names = [st.name for st in aggregator.leaderboard()]
        assert names == ["Zulu", "Yankee"]

    def test_unknown_sort_key(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.leaderboard("headshots")

    def test_player_stats_by_id_and_name(self, db, aggregator, record):
        record([row("Ghost", "WIN", 3, 1, 1)], SEASON + timedelta(days=1))
        player_id = self._player_id(db, "ghost")
        assert aggregator.player_stats(player_id=player_id).wins == 1
        assert aggregator.player_stats(name="GHOST!").player_id == player_id

    def test_player_without_season_matches_gets_zero_stats(self, db, aggregator, record):
        record([row("Ghost", "WIN", 3, 1, 1)], SEASON - timedelta(days=30))
        st = aggregator.player_stats(name="Ghost")
        assert st.matches == 0
        assert st.kda == 0.0

    def test_player_stats_errors(self, aggregator):
        with pytest.raises(ValidationError):
            aggregator.player_stats()
        with pytest.raises(NotFoundError):
            aggregator.player_stats(player_id=99)
        with pytest.raises(NotFoundError):
            aggregator.player_stats(name="Nobody")

    def test_history(self, db, aggregator, record):
        for i in range(12):
            record([row("Ghost", "WIN", i, 1, 0)], SEASON + timedelta(days=i))
        history = aggregator.history(self._player_id(db, "ghost"))
        assert len(history) == 10
        assert history[0]["kills"] == 11
        with pytest.raises(NotFoundError):
            aggregator.history(999)

    def test_export_rows(self, db, aggregator, record):
        record([row("Ghost", "WIN", 5, 0, 3), row("Raven", "LOSE", 0, 5, 0)], SEASON + timedelta(days=1))
        rows = aggregator.export_rows("kda")
        assert rows[0] == EXPORT_HEADER
        assert rows[1][2] == "Ghost"
        assert rows[1][6:] == ["100.0%", "8.00"]
        assert rows[2][0] == 2
