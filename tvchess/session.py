"""GameSession: the authoritative position, move ledger and turn state of one game.

A session pairs a human with a computer opponent. Every change to the position
goes through ``apply_human_move``, ``request_opponent_move``, ``undo`` or
``redo``; presentation code reads immutable ``SessionSnapshot`` objects and never
holds a reference to the live board.

Turn states::

    AWAITING_HUMAN_MOVE --human move--> COMPUTING_OPPONENT_MOVE --reply--> AWAITING_HUMAN_MOVE
            \\                                   \\
             +------- game over ------> TERMINAL <+

While the opponent is computing, human moves, undo and redo are refused, so a
pending engine result can never race a ledger mutation.
"""

import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Tuple, Union

import chess

from tvchess.config import CONFIG
from tvchess.core.board import ChessBoard, IllegalMoveRejected, LedgerCorruption, is_draw
from tvchess.core.search import Difficulty, SearchEngine
from tvchess.oracle import MoveOracle

log = logging.getLogger(__name__)

SquareLike = Union[int, str]


class TurnState(str, Enum):
    AWAITING_HUMAN_MOVE = "awaiting-human-move"
    COMPUTING_OPPONENT_MOVE = "computing-opponent-move"
    TERMINAL = "terminal"


class GameResult(str, Enum):
    NONE = "none"
    WHITE_WINS = "white-wins"
    BLACK_WINS = "black-wins"
    DRAW = "draw"
    GAME_OVER = "game-over"


RESULT_TEXT = {
    GameResult.WHITE_WINS: "White Wins!",
    GameResult.BLACK_WINS: "Black Wins!",
    GameResult.DRAW: "Draw!",
    GameResult.GAME_OVER: "Game Over",
}


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    fen: str
    state: TurnState
    result: GameResult
    difficulty: Difficulty
    human_color: chess.Color
    last_move: Optional[str]
    history: Tuple[str, ...]
    can_undo: bool
    can_redo: bool
    status: str


def parse_color(color: Union[chess.Color, str]) -> chess.Color:
    if isinstance(color, bool):
        return color
    name = str(color).strip().lower()
    if name in ("white", "w"):
        return chess.WHITE
    if name in ("black", "b"):
        return chess.BLACK
    raise ValueError(f"Unknown color {color!r}")


def parse_square(square: SquareLike) -> Optional[chess.Square]:
    if isinstance(square, int):
        return square if 0 <= square < 64 else None
    try:
        return chess.parse_square(str(square).strip().lower())
    except ValueError:
        return None


def compute_result(board: chess.Board) -> GameResult:
    if board.is_checkmate():
        return GameResult.BLACK_WINS if board.turn == chess.WHITE else GameResult.WHITE_WINS
    if is_draw(board):
        return GameResult.DRAW
    if board.is_game_over():
        return GameResult.GAME_OVER
    return GameResult.NONE


class GameSession:
    def __init__(self, difficulty: Difficulty = Difficulty.EASY,
                 human_color: Union[chess.Color, str] = chess.WHITE,
                 engine: Optional[SearchEngine] = None,
                 oracle: Optional[MoveOracle] = None,
                 thinking_delay: Optional[float] = None,
                 fen: Optional[str] = None):
        self.session_id = uuid.uuid4().hex
        self.difficulty = Difficulty.parse(difficulty)
        self.human_color = parse_color(human_color)
        self.engine = engine or SearchEngine()
        # Fallback moves draw from the engine's seeded generator when it has one.
        self.rng = getattr(self.engine, "rng", None) or random.Random()
        self.oracle = oracle
        self.thinking_delay = CONFIG.session.thinking_delay_s if thinking_delay is None else thinking_delay

        self._board = ChessBoard(fen)
        self._redo: List[str] = []
        self._lock = threading.RLock()
        self._pending = False
        self._closed = False
        self._worker: Optional[threading.Thread] = None
        self._listeners: List[Callable[[SessionSnapshot], None]] = []
        self.state = TurnState.AWAITING_HUMAN_MOVE
        self._settle()

    # ── Queries ────────────────────────────────────────────

    @property
    def fen(self) -> str:
        with self._lock:
            return self._board.fen()

    @property
    def position(self) -> chess.Board:
        """Detached copy of the current position."""
        with self._lock:
            return self._board.snapshot()

    @property
    def result(self) -> GameResult:
        with self._lock:
            return compute_result(self._board.board)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def can_undo(self) -> bool:
        with self._lock:
            return (
                self._board.ply_count() >= 2
                and not self._busy()
                and self._board.side_to_move() == self.human_color
            )

    @property
    def can_redo(self) -> bool:
        with self._lock:
            return len(self._redo) >= 2 and not self._busy()

    @property
    def redo_stack(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._redo)

    def is_terminal(self) -> bool:
        with self._lock:
            return self._board.is_terminal()

    def history(self) -> List[str]:
        with self._lock:
            return self._board.history_san()

    def legal_targets(self, square: SquareLike) -> List[str]:
        """Squares the human's piece on `square` may move to; empty when it is not their turn."""
        sq = parse_square(square)
        with self._lock:
            if sq is None or self.state != TurnState.AWAITING_HUMAN_MOVE:
                return []
            return [chess.square_name(t) for t in self._board.legal_targets(sq)]

    def status_text(self) -> str:
        if self.state == TurnState.TERMINAL:
            return RESULT_TEXT.get(self.result, "Game Over")
        if self.state == TurnState.COMPUTING_OPPONENT_MOVE:
            return "THINKING..."
        return "YOUR TURN"

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            last = self._board.last_move()
            return SessionSnapshot(
                session_id=self.session_id,
                fen=self._board.fen(),
                state=self.state,
                result=self.result,
                difficulty=self.difficulty,
                human_color=self.human_color,
                last_move=last.uci() if last else None,
                history=tuple(self._board.history_san()),
                can_undo=self.can_undo,
                can_redo=self.can_redo,
                status=self.status_text(),
            )

    def subscribe(self, listener: Callable[[SessionSnapshot], None]) -> Callable[[], None]:
        """Call `listener` with a fresh snapshot after every change. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Mutations ──────────────────────────────────────────

    def apply_human_move(self, from_square: SquareLike, to_square: SquareLike,
                         promotion: Optional[chess.PieceType] = None) -> bool:
        """Play the human's move. Illegal or out-of-turn requests change nothing and return False."""
        src, dst = parse_square(from_square), parse_square(to_square)
        with self._lock:
            if self._closed or self.state != TurnState.AWAITING_HUMAN_MOVE:
                return False
            if src is None or dst is None:
                return False
            move = self._board.resolve(src, dst, promotion)
            if move is None:
                log.debug("Rejected human move %s-%s", from_square, to_square)
                return False
            san = self._board.apply(move)
            self._redo.clear()
            self._settle()
            log.info("Human played %s (%s)", san, self.state.value)
        self._notify()
        return True

    def request_opponent_move(self) -> bool:
        """Wait the thinking delay, then play the opponent's move. Blocks the caller."""
        with self._lock:
            if not self._admit_request():
                return False
            self._pending = True
            board = self._board.snapshot()
        return self._complete_opponent_move(board)

    def request_opponent_move_async(self, callback: Optional[Callable[[bool], None]] = None) -> Optional[threading.Thread]:
        """Same as `request_opponent_move` but on a worker thread. Returns None if no request is admissible."""
        with self._lock:
            if not self._admit_request():
                return None
            self._pending = True
            board = self._board.snapshot()

            def worker():
                applied = self._complete_opponent_move(board)
                if callback:
                    callback(applied)

            self._worker = threading.Thread(target=worker, daemon=True)
            self._worker.start()
            return self._worker

    def wait_for_opponent(self, timeout: Optional[float] = None):
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def undo(self) -> bool:
        """Take back the last opponent move and the human move before it."""
        with self._lock:
            if self._closed or not self.can_undo:
                return False
            opponent = self._board.undo_last()
            human = self._board.undo_last()
            self._redo.append(opponent[1])
            self._redo.append(human[1])
            self._settle()
            log.info("Undid %s %s", human[1], opponent[1])
        self._notify()
        return True

    def redo(self) -> bool:
        """Replay the most recently undone human/opponent pair."""
        with self._lock:
            if self._closed or not self.can_redo:
                return False
            try:
                self._replay_pair()
            except LedgerCorruption as e:
                log.warning("Discarding redo stack: %s", e)
                self._redo.clear()
                return False
            self._settle()
        self._notify()
        return True

    def close(self):
        """Discard the session. A pending opponent result will be dropped on arrival."""
        with self._lock:
            self._closed = True
            self._listeners.clear()

    # ── Internals ──────────────────────────────────────────

    def _busy(self) -> bool:
        return self._pending or self.state == TurnState.COMPUTING_OPPONENT_MOVE

    def _admit_request(self) -> bool:
        return (
            not self._closed
            and not self._pending
            and self.state == TurnState.COMPUTING_OPPONENT_MOVE
            and bool(self._board.legal_moves())
        )

    def _settle(self):
        if self._board.is_terminal():
            self.state = TurnState.TERMINAL
        elif self._board.side_to_move() == self.human_color:
            self.state = TurnState.AWAITING_HUMAN_MOVE
        else:
            self.state = TurnState.COMPUTING_OPPONENT_MOVE

    def _complete_opponent_move(self, board: chess.Board) -> bool:
        try:
            if self.thinking_delay > 0:
                time.sleep(self.thinking_delay)
            move = self._choose_opponent_move(board)
        except BaseException:
            with self._lock:
                self._pending = False
            raise

        with self._lock:
            self._pending = False
            if self._closed:
                log.info("Dropping opponent move %s for discarded session %s", move.uci(), self.session_id)
                return False
            san = self._board.apply(move)
            self._redo.clear()
            self._settle()
            log.info("Opponent played %s (%s)", san, self.state.value)
        self._notify()
        return True

    def _choose_opponent_move(self, board: chess.Board) -> chess.Move:
        moves = list(board.legal_moves)
        try:
            if self.oracle is not None:
                move = self.oracle.select_move(board)
            else:
                move = self.engine.select_move(board, self.difficulty)
        except Exception:
            log.exception("Opponent move source failed, playing a random move")
            move = None
        if move is None or move not in moves:
            move = self.rng.choice(moves)
        return move

    def _replay_pair(self):
        human_san = self._redo.pop()
        opponent_san = self._redo.pop()
        try:
            self._board.apply_notation(human_san)
        except IllegalMoveRejected as e:
            raise LedgerCorruption(f"cannot replay {human_san}") from e
        try:
            self._board.apply_notation(opponent_san)
        except IllegalMoveRejected as e:
            self._board.undo_last()
            raise LedgerCorruption(f"cannot replay {opponent_san} after {human_san}") from e
        log.info("Redid %s %s", human_san, opponent_san)

    def _notify(self):
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                log.exception("Session listener failed")
