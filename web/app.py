from fastapi import FastAPI, HTTPException, Request
import asyncio
import base64
import binascii
import logging
import os
import sys
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from matchboard.config import DEFAULT_HISTORY_LIMIT, Settings, setup_logging
from matchboard.errors import (
    DownloadError,
    DuplicateMatchError,
    ExtractionError,
    MatchboardError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from matchboard.service import MatchService
from matchboard.stats import SORT_WINRATE

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Matchboard")

_service: Optional[MatchService] = None


def get_service() -> MatchService:
    global _service
    if _service is None:
        settings = Settings.from_env()
        setup_logging(settings.log_level)
        _service = MatchService.from_settings(settings)
    return _service


def set_service(service: Optional[MatchService]) -> None:
    """Swap the process-wide service (tests point it at a temporary database)."""
    global _service
    _service = service


def _status_for(exc: MatchboardError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, DuplicateMatchError):
        return 409
    if isinstance(exc, (ExtractionError, DownloadError)):
        return 502
    return 500


def _raise_http(exc: MatchboardError, action: str) -> None:
    status = _status_for(exc)
    if status >= 500 and isinstance(exc, PersistenceError):
        LOGGER.error("Failed to %s: %s", action, exc)
        raise HTTPException(status_code=status, detail=f"Failed to {action}")
    raise HTTPException(status_code=status, detail=str(exc))


async def _read_payload(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def _decode_images(encoded: list) -> list:
    images = []
    for index, item in enumerate(encoded, 1):
        try:
            images.append(base64.b64decode(str(item), validate=True))
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=400, detail=f"Image {index} is not valid base64")
    return images


@app.post("/api/submit")
async def submit(request: Request) -> dict:
    payload = await _read_payload(request)
    urls = [str(u).strip() for u in (payload.get("urls") or []) if str(u).strip()]
    encoded = payload.get("images") or []
    if urls and encoded:
        raise HTTPException(status_code=400, detail="Send either urls or images, not both")
    if not urls and not encoded:
        raise HTTPException(status_code=400, detail="urls or images is required")

    service = get_service()
    if urls:
        summary = await asyncio.to_thread(service.submit_images, urls)
    else:
        summary = await asyncio.to_thread(service.submit_image_bytes, _decode_images(encoded))
    return summary.to_dict()


@app.get("/api/leaderboard")
async def leaderboard(sort: str = SORT_WINRATE) -> dict:
    try:
        stats = get_service().get_leaderboard(sort)
    except MatchboardError as e:
        _raise_http(e, "load leaderboard")
    return {
        "sort": sort,
        "players": [dict(s.to_dict(), rank=rank) for rank, s in enumerate(stats, 1)],
    }


@app.get("/api/export")
async def export(sort: str = SORT_WINRATE) -> dict:
    try:
        rows = get_service().export_leaderboard(sort)
    except MatchboardError as e:
        _raise_http(e, "export leaderboard")
    return {"header": rows[0], "rows": rows[1:]}


@app.get("/api/players")
async def players(include_deleted: bool = False) -> dict:
    try:
        rows = get_service().list_players(include_deleted=include_deleted)
    except MatchboardError as e:
        _raise_http(e, "load players")
    return {"players": rows, "count": len(rows)}


@app.get("/api/players/by-name/{name}/stats")
async def player_stats_by_name(name: str) -> dict:
    try:
        return get_service().get_player_stats(name=name).to_dict()
    except MatchboardError as e:
        _raise_http(e, "load player stats")


@app.get("/api/players/{player_id}/stats")
async def player_stats(player_id: int) -> dict:
    try:
        return get_service().get_player_stats(player_id=player_id).to_dict()
    except MatchboardError as e:
        _raise_http(e, "load player stats")


@app.get("/api/players/{player_id}/history")
async def player_history(player_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> dict:
    safe_limit = max(1, min(limit, 100))
    try:
        rows = get_service().get_history(player_id, safe_limit)
    except MatchboardError as e:
        _raise_http(e, "load player history")
    return {"player_id": player_id, "matches": rows, "count": len(rows)}


@app.post("/api/players/{player_id}/rename")
async def rename_player(player_id: int, request: Request) -> dict:
    payload = await _read_payload(request)
    new_name = str(payload.get("name") or "").strip()
    if not new_name:
        raise HTTPException(status_code=400, detail="name is required")
    try:
        return {"ok": True, "player": get_service().rename_player(player_id, new_name)}
    except MatchboardError as e:
        _raise_http(e, "rename player")


@app.delete("/api/players/{player_id}")
async def delete_player(player_id: int) -> dict:
    try:
        return {"ok": True, "player": get_service().delete_player(player_id)}
    except MatchboardError as e:
        _raise_http(e, "delete player")


@app.post("/api/players/{player_id}/restore")
async def restore_player(player_id: int) -> dict:
    try:
        return {"ok": True, "player": get_service().restore_player(player_id)}
    except MatchboardError as e:
        _raise_http(e, "restore player")


@app.post("/api/season-start")
async def season_start(request: Request) -> dict:
    payload = await _read_payload(request)
    try:
        start = get_service().set_season_start(str(payload.get("date") or ""))
    except MatchboardError as e:
        _raise_http(e, "set season start")
    return {"ok": True, "season_start": start.isoformat()}


@app.post("/api/reset-season")
async def reset_season() -> dict:
    try:
        start = get_service().reset_season_now()
    except MatchboardError as e:
        _raise_http(e, "reset season")
    return {"ok": True, "season_start": start.isoformat()}


@app.post("/api/reset-player")
async def reset_player(request: Request) -> dict:
    payload = await _read_payload(request)
    name = str(payload.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    try:
        reset_at = get_service().reset_player(name, str(payload.get("date") or "now"))
    except MatchboardError as e:
        _raise_http(e, "reset player")
    return {"ok": True, "name": name, "reset_at": reset_at.isoformat()}


@app.delete("/api/matches/{match_id}")
async def delete_match(match_id: int) -> dict:
    try:
        get_service().delete_match(match_id)
    except MatchboardError as e:
        _raise_http(e, "delete match")
    return {"ok": True, "match_id": match_id}


@app.post("/api/matches/{match_id}/restore")
async def restore_match(match_id: int) -> dict:
    try:
        get_service().restore_match(match_id)
    except MatchboardError as e:
        _raise_http(e, "restore match")
    return {"ok": True, "match_id": match_id}


@app.post("/api/wipe")
async def wipe(request: Request) -> dict:
    payload = await _read_payload(request)
    if payload.get("confirm") is not True:
        raise HTTPException(status_code=400, detail="confirm must be true")
    try:
        counts = get_service().wipe_all()
    except MatchboardError as e:
        _raise_http(e, "wipe data")
    return {"ok": True, "wiped": counts}


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("MATCHBOARD_PORT", "5000"))
    print("Starting Matchboard Web Server...")
    print(f"Open http://localhost:{port}/docs in your browser")
    uvicorn.run(app, host="127.0.0.1", port=port)
