# matchboard/stats.py

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from matchboard.config import DEFAULT_HISTORY_LIMIT, MIN_DEATHS_FOR_KDA
from matchboard.database import Database, ensure_utc
from matchboard.errors import NotFoundError, ValidationError
from matchboard.extraction import RESULT_WIN
from matchboard.names import canonicalize

SORT_WINRATE = "winrate"
SORT_KDA = "kda"
SORT_KEYS = (SORT_WINRATE, SORT_KDA)

EXPORT_HEADER = ["Rank", "ID", "Player", "Matches", "Wins", "Losses", "WinRate %", "KDA"]


def calculate_win_rate(wins: int, matches: int) -> float:
    if matches == 0:
        return 0.0
    return wins / matches * 100


def calculate_kda(kills: int, deaths: int, assists: int) -> float:
    """(kills + assists) / deaths, with deaths floored so the ratio stays finite."""
    return (kills + assists) / max(deaths, MIN_DEATHS_FOR_KDA)


@dataclass
class PlayerStats:
    player_id: int
    name: str
    matches: int = 0
    wins: int = 0
    losses: int = 0
    kills: int = 0
    deaths: int = 0
    assists: int = 0

    @property
    def win_rate(self) -> float:
        return calculate_win_rate(self.wins, self.matches)

    @property
    def kda(self) -> float:
        return calculate_kda(self.kills, self.deaths, self.assists)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "matches": self.matches,
            "wins": self.wins,
            "losses": self.losses,
            "kills": self.kills,
            "deaths": self.deaths,
            "assists": self.assists,
            "win_rate": round(self.win_rate, 2),
            "kda": round(self.kda, 2),
        }


@dataclass(frozen=True)
class SeasonSettings:
    """Season window plus per-player resets (keyed by canonical name)."""

    season_start: datetime
    player_resets: Dict[str, datetime] = field(default_factory=dict)

    def reset_for(self, canonical_name: str) -> Optional[datetime]:
        value = self.player_resets.get(canonical_name)
        return ensure_utc(value) if value is not None else None


def validate_sort_key(sort_key: Optional[str]) -> str:
    key = (sort_key or SORT_WINRATE).strip().lower()
    if key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key '{sort_key}', expected one of {', '.join(SORT_KEYS)}")
    return key


def ranking_key(stats: PlayerStats, sort_key: str):
    """
    Matches desc, then the chosen metric desc, then the other metric desc,
    then player id asc.
    """
    if sort_key == SORT_KDA:
        primary, secondary = stats.kda, stats.win_rate
    else:
        primary, secondary = stats.win_rate, stats.kda
    return (-stats.matches, -primary, -secondary, stats.player_id)


class StatsAggregator:
    """Season- and reset-aware leaderboard over persisted match rows."""

    def __init__(self, db: Database):
        self.db = db

    def load_settings(self) -> SeasonSettings:
        return SeasonSettings(
            season_start=self.db.get_season_start_date(),
            player_resets=self.db.get_player_reset_dates(),
        )

    def collect(self, settings: Optional[SeasonSettings] = None) -> Dict[int, PlayerStats]:
        settings = settings or self.load_settings()
        totals: Dict[int, PlayerStats] = {}

        for match in self.db.get_matches_since(ensure_utc(settings.season_start)):
            created_at = match["created_at"]
            for row in match["players"]:
                reset = settings.reset_for(row["canonical_name"])
                if reset is not None and reset > created_at:
                    continue

                stat = totals.get(row["player_id"])
                if stat is None:
                    stat = PlayerStats(player_id=row["player_id"], name=row["player_name"])
                    totals[row["player_id"]] = stat

                stat.matches += 1
                stat.kills += row["kills"]
                stat.deaths += row["deaths"]
                stat.assists += row["assists"]
                if str(row["result"]).upper() == RESULT_WIN:
                    stat.wins += 1
                else:
                    stat.losses += 1
        return totals

    def leaderboard(self, sort_key: str = SORT_WINRATE,
                    settings: Optional[SeasonSettings] = None) -> List[PlayerStats]:
        key = validate_sort_key(sort_key)
        stats = list(self.collect(settings).values())
        stats.sort(key=lambda s: ranking_key(s, key))
        return stats

    def player_stats(self, player_id: Optional[int] = None, name: Optional[str] = None,
                     settings: Optional[SeasonSettings] = None) -> PlayerStats:
        """Stats for one live player, looked up by id or by canonical name."""
        if player_id is None and not name:
            raise ValidationError("Either a player id or a name is required")

        if player_id is not None:
            player = self.db.get_player_by_id(player_id)
        else:
            player = self.db.get_player_by_canonical(canonicalize(name))
        if player is None:
            raise NotFoundError(f"Player {player_id if player_id is not None else name!r} not found")

        totals = self.collect(settings)
        return totals.get(
            player["player_id"],
            PlayerStats(player_id=player["player_id"], name=player["name"]),
        )

    def history(self, player_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Dict]:
        if self.db.get_player_by_id(player_id) is None:
            raise NotFoundError(f"Player {player_id} not found")
        return self.db.get_player_history(player_id, max(1, limit))

    def export_rows(self, sort_key: str = SORT_WINRATE,
                    settings: Optional[SeasonSettings] = None) -> List[List[Any]]:
        """Header plus one formatted row per ranked player."""
        rows: List[List[Any]] = [list(EXPORT_HEADER)]
        for rank, st in enumerate(self.leaderboard(sort_key, settings), start=1):
            rows.append([
                rank,
                st.player_id,
                st.name,
                st.matches,
                st.wins,
                st.losses,
                f"{st.win_rate:.1f}%",
                f"{st.kda:.2f}",
            ])
        return rows
