# main.py
"""
Command-line front end for the match leaderboard.

Examples:
  python main.py submit https://cdn.example/board1.png https://cdn.example/board2.png
  python main.py submit --file board.png
  python main.py leaderboard --sort kda
  python main.py reset-player "Shadow Fox" --date 2025-03-01
"""

import argparse
import logging
from pathlib import Path
from typing import List

from matchboard.config import DEFAULT_HISTORY_LIMIT, Settings, setup_logging
from matchboard.errors import MatchboardError
from matchboard.ingestion import BatchSummary, STATUS_DUPLICATE, STATUS_SUCCESS
from matchboard.service import MatchService
from matchboard.stats import PlayerStats, SORT_KEYS, SORT_WINRATE

logger = logging.getLogger(__name__)


def _safe_print(message: str) -> None:
    """Print with ASCII fallback for restricted terminal encodings."""
    try:
        print(message)
    except UnicodeEncodeError:
        fallback = (
            message.replace("✅", "[OK]")
            .replace("⚠️", "[DUP]")
            .replace("❌", "[ERROR]")
        )
        print(fallback)


def _print_summary(summary: BatchSummary) -> None:
    for outcome in summary.outcomes:
        if outcome.status == STATUS_SUCCESS:
            icon = "✅"
        elif outcome.status == STATUS_DUPLICATE:
            icon = "⚠️"
        else:
            icon = "❌"
        _safe_print(f"{icon} Screenshot {outcome.index + 1}: {outcome.message}")
    print(
        f"\n{summary.succeeded} saved, {summary.duplicates} duplicate, "
        f"{summary.failed} failed (of {len(summary.outcomes)})"
    )


def _print_leaderboard(stats: List[PlayerStats], sort_key: str) -> None:
    print("\n" + "=" * 64)
    print(f"Leaderboard (sorted by {sort_key})")
    print("=" * 64)
    if not stats:
        print("No matches recorded this season.")
        return
    print(f"{'#':>3} {'ID':>4}  {'Player':<20} {'M':>4} {'W':>4} {'L':>4} {'Win%':>7} {'KDA':>6}")
    print("-" * 64)
    for rank, st in enumerate(stats, 1):
        print(
            f"{rank:>3} {st.player_id:>4}  {st.name[:20]:<20} {st.matches:>4} "
            f"{st.wins:>4} {st.losses:>4} {st.win_rate:>6.1f}% {st.kda:>6.2f}"
        )


def _print_player(st: PlayerStats) -> None:
    print(f"\n{st.name} (id {st.player_id})")
    print(f"  Matches: {st.matches}  Wins: {st.wins}  Losses: {st.losses}")
    print(f"  K/D/A:   {st.kills}/{st.deaths}/{st.assists}")
    print(f"  Win rate: {st.win_rate:.1f}%  KDA: {st.kda:.2f}")


def _read_files(paths: List[str]) -> List[bytes]:
    payloads = []
    for path in paths:
        payloads.append(Path(path).read_bytes())
    return payloads


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Matchboard - scoreboard screenshot leaderboard")
    parser.add_argument("--db", default=None, help="Path to SQLite database (overrides MATCHBOARD_DB_PATH)")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("submit", help="Ingest scoreboard screenshots")
    p.add_argument("urls", nargs="*", help="Image URLs to download and ingest")
    p.add_argument("--file", action="append", default=[], dest="files", help="Local image file (repeatable)")

    p = sub.add_parser("leaderboard", help="Show the season leaderboard")
    p.add_argument("--sort", default=SORT_WINRATE, choices=SORT_KEYS)

    p = sub.add_parser("player", help="Show one player's season stats")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--id", type=int, dest="player_id")
    group.add_argument("--name")

    p = sub.add_parser("history", help="Show a player's recent matches")
    p.add_argument("player_id", type=int)
    p.add_argument("--limit", type=int, default=DEFAULT_HISTORY_LIMIT)

    p = sub.add_parser("season-start", help="Set the season start date (YYYY-MM-DD) or 'now'")
    p.add_argument("date")

    p = sub.add_parser("reset-player", help="Reset one player's stats from a date")
    p.add_argument("name")
    p.add_argument("--date", default="now", help="YYYY-MM-DD or 'now' (default)")

    for name, help_text in (
        ("delete-match", "Soft-delete a match"),
        ("restore-match", "Restore a deleted match"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("match_id", type=int)

    p = sub.add_parser("rename-player", help="Rename a player")
    p.add_argument("player_id", type=int)
    p.add_argument("new_name")

    for name, help_text in (
        ("delete-player", "Soft-delete a player"),
        ("restore-player", "Restore a deleted player"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("player_id", type=int)

    p = sub.add_parser("players", help="List players")
    p.add_argument("--all", action="store_true", help="Include deleted players")

    p = sub.add_parser("wipe", help="Delete all matches and players")
    p.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    return parser


def run_command(service: MatchService, args: argparse.Namespace) -> int:
    command = args.command

    if command == "submit":
        if args.urls and args.files:
            print("Pass either URLs or --file paths, not both")
            return 2
        if args.files:
            summary = service.submit_image_bytes(_read_files(args.files))
        elif args.urls:
            summary = service.submit_images(args.urls)
        else:
            print("Nothing to submit")
            return 2
        _print_summary(summary)
        return 0 if summary.failed == 0 else 1

    if command == "leaderboard":
        _print_leaderboard(service.get_leaderboard(args.sort), args.sort)
    elif command == "player":
        _print_player(service.get_player_stats(player_id=args.player_id, name=args.name))
    elif command == "history":
        rows = service.get_history(args.player_id, args.limit)
        if not rows:
            print("No matches recorded for this player.")
        for row in rows:
            print(
                f"  #{row['match_id']:<5} {row['created_at']}  {row['result']:<4} "
                f"{row['kills']}/{row['deaths']}/{row['assists']}"
            )
    elif command == "season-start":
        if args.date.strip().lower() == "now":
            start = service.reset_season_now()
        else:
            start = service.set_season_start(args.date)
        _safe_print(f"✅ Season starts {start.isoformat()}")
    elif command == "reset-player":
        reset_at = service.reset_player(args.name, args.date)
        _safe_print(f"✅ Stats for '{args.name}' count from {reset_at.isoformat()}")
    elif command == "delete-match":
        service.delete_match(args.match_id)
        _safe_print(f"✅ Match {args.match_id} deleted")
    elif command == "restore-match":
        service.restore_match(args.match_id)
        _safe_print(f"✅ Match {args.match_id} restored")
    elif command == "rename-player":
        player = service.rename_player(args.player_id, args.new_name)
        _safe_print(f"✅ Player {args.player_id} is now '{player['name']}'")
    elif command == "delete-player":
        player = service.delete_player(args.player_id)
        _safe_print(f"✅ Player '{player['name']}' deleted")
    elif command == "restore-player":
        player = service.restore_player(args.player_id)
        _safe_print(f"✅ Player '{player['name']}' restored")
    elif command == "players":
        players = service.list_players(include_deleted=args.all)
        if not players:
            print("No players in database.")
        for player in players:
            suffix = " (deleted)" if player.get("deleted_at") else ""
            print(f"  {player['player_id']:>4}  {player['name']}{suffix}")
    elif command == "wipe":
        if not args.yes:
            answer = input("This deletes every match and player. Type 'yes' to continue: ").strip().lower()
            if answer != "yes":
                print("Aborted.")
                return 1
        counts = service.wipe_all()
        _safe_print(
            f"✅ Wiped {counts['matches']} matches, {counts['results']} results, "
            f"{counts['players']} players"
        )
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    if args.db:
        settings.db_path = args.db
    setup_logging(settings.log_level, verbose=args.verbose)
    logger.debug("Using database %s", settings.db_path)

    try:
        service = MatchService.from_settings(settings)
    except MatchboardError as exc:
        _safe_print(f"❌ Could not open database: {exc}")
        return 1

    try:
        return run_command(service, args)
    except MatchboardError as exc:
        _safe_print(f"❌ {exc}")
        return 1
    finally:
        service.close()


if __name__ == "__main__":
    raise SystemExit(main())
