"""FastAPI REST interface for a remote board front end."""

import threading
from typing import Optional

import chess
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from tvchess import configure_logging
from tvchess.config import CONFIG
from tvchess.core.search import Difficulty
from tvchess.main import GameController
from tvchess.session import SessionSnapshot, parse_square

configure_logging(CONFIG.log_level)

app = FastAPI(title=CONFIG.ui.app_name, version="1.0.0")

# Shared controller; the presentation layer only ever sees snapshots.
controller = GameController()
_controller_lock = threading.Lock()


class NewGameRequest(BaseModel):
    difficulty: Difficulty = Difficulty.EASY
    human_color: str = "white"


class MoveRequest(BaseModel):
    from_square: str  # e.g. "e2"
    to_square: str
    promotion: Optional[str] = None  # "q", "r", "b" or "n"


def _snapshot_dict(snap: SessionSnapshot) -> dict:
    return {
        "session_id": snap.session_id,
        "fen": snap.fen,
        "state": snap.state.value,
        "result": snap.result.value,
        "difficulty": snap.difficulty.value,
        "human_color": chess.COLOR_NAMES[snap.human_color],
        "last_move": snap.last_move,
        "history": list(snap.history),
        "can_undo": snap.can_undo,
        "can_redo": snap.can_redo,
        "status": snap.status,
    }


def _require_square(name: str) -> chess.Square:
    square = parse_square(name)
    if square is None:
        raise HTTPException(status_code=400, detail=f"Invalid square: {name}")
    return square


@app.get("/game")
def get_game():
    return _snapshot_dict(controller.snapshot())


@app.post("/game/new")
def new_game(req: NewGameRequest = NewGameRequest()):
    with _controller_lock:
        try:
            controller.new_game(req.difficulty, req.human_color)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _snapshot_dict(controller.snapshot())


@app.post("/game/move")
def make_move(req: MoveRequest):
    src = _require_square(req.from_square)
    dst = _require_square(req.to_square)
    promotion = None
    if req.promotion:
        try:
            promotion = chess.Piece.from_symbol(req.promotion.lower()).piece_type
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid promotion piece: {req.promotion}")
    with _controller_lock:
        applied = controller.play(src, dst, promotion)
        return {"applied": applied, **_snapshot_dict(controller.snapshot())}


@app.post("/game/undo")
def undo():
    with _controller_lock:
        applied = controller.undo()
        return {"applied": applied, **_snapshot_dict(controller.snapshot())}


@app.post("/game/redo")
def redo():
    with _controller_lock:
        applied = controller.redo()
        return {"applied": applied, **_snapshot_dict(controller.snapshot())}


@app.get("/game/targets/{square}")
def legal_targets(square: str):
    _require_square(square)
    return {"square": square, "targets": controller.session.legal_targets(square)}
