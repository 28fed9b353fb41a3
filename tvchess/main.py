import logging
from typing import Optional, Union

import chess

from tvchess.config import CONFIG
from tvchess.core.search import Difficulty, SearchEngine
from tvchess.oracle import MoveOracle
from tvchess.session import GameSession, SessionSnapshot, TurnState

log = logging.getLogger(__name__)


class GameController:
    """Owns the current session and schedules the opponent's replies."""

    def __init__(self, engine: Optional[SearchEngine] = None, oracle: Optional[MoveOracle] = None,
                 thinking_delay: Optional[float] = None, auto_reply: bool = True):
        self.engine = engine or SearchEngine()
        if oracle is None and CONFIG.oracle.enabled:
            oracle = MoveOracle()
        self.oracle = oracle
        self.thinking_delay = thinking_delay
        self.auto_reply = auto_reply
        self.session: Optional[GameSession] = None
        self.new_game()

    def new_game(self, difficulty: Optional[Union[Difficulty, str]] = None,
                 human_color: Optional[Union[chess.Color, str]] = None) -> GameSession:
        """Replace the current session. Results still pending for the old one are dropped."""
        session = GameSession(
            difficulty=Difficulty.parse(difficulty or CONFIG.session.difficulty),
            human_color=CONFIG.session.human_color if human_color is None else human_color,
            engine=self._session_engine(),
            oracle=self.oracle,
            thinking_delay=self.thinking_delay,
        )
        if self.session is not None:
            self.session.close()
        self.session = session
        log.info("New game %s (%s, human plays %s)", self.session.session_id,
                 self.session.difficulty.value, chess.COLOR_NAMES[self.session.human_color])
        self._schedule_reply()
        return self.session

    def play(self, from_square, to_square, promotion: Optional[chess.PieceType] = None) -> bool:
        applied = self.session.apply_human_move(from_square, to_square, promotion)
        if applied:
            self._schedule_reply()
        return applied

    def undo(self) -> bool:
        return self.session.undo()

    def redo(self) -> bool:
        return self.session.redo()

    def wait(self, timeout: Optional[float] = None):
        self.session.wait_for_opponent(timeout)

    def snapshot(self) -> SessionSnapshot:
        return self.session.snapshot()

    def _session_engine(self):
        # Sessions never share a SearchEngine.
        if isinstance(self.engine, SearchEngine):
            return self.engine.spawn()
        return self.engine

    def _schedule_reply(self):
        if self.auto_reply and self.session.state == TurnState.COMPUTING_OPPONENT_MOVE:
            self.session.request_opponent_move_async()
