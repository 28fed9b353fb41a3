"""
Best-effort move source backed by an OpenAI-compatible chat endpoint.

The oracle is asked for a JSON object ``{"bestMove": "<SAN or UCI>"}`` chosen
from the legal moves it is shown. Whatever goes wrong (transport errors,
timeouts, malformed JSON, a move outside the legal list) the oracle answers
with a uniformly random legal move instead, so the opponent always moves.
"""
import json
import logging
import random
import time
from typing import List, Optional

import chess
from openai import OpenAI

from tvchess.config import CONFIG, OracleConfig

log = logging.getLogger(__name__)

SYSTEM = "You are a grandmaster chess engine. Choose the strongest move from the legal moves you are given."


class OracleFailure(Exception):
    """The oracle produced no usable move."""


class MoveOracle:
    def __init__(self, cfg: Optional[OracleConfig] = None, client=None, rng: Optional[random.Random] = None):
        self.cfg = cfg or CONFIG.oracle
        self._client = client
        self.rng = rng or random.Random()

    @property
    def client(self):
        if self._client is None:
            self._client = OpenAI(api_key=self.cfg.api_key or None, base_url=self.cfg.base_url or None)
        return self._client

    def select_move(self, board: chess.Board) -> Optional[chess.Move]:
        """Oracle's move for the side to move, or a random legal move on any failure."""
        moves = list(board.legal_moves)
        if not moves:
            return None
        try:
            return self._ask(board, moves)
        except Exception as e:
            log.warning("Oracle failed (%s), playing a random move", e)
            return self.rng.choice(moves)

    def _ask(self, board: chess.Board, moves: List[chess.Move]) -> chess.Move:
        side = "White" if board.turn == chess.WHITE else "Black"
        sans = [board.san(m) for m in moves]
        messages = [
            {"role": "system", "content": SYSTEM},
            {"role": "user", "content": (
                f"You are playing {side}.\n"
                f"Position (FEN): {board.fen()}\n"
                f"Legal moves: {json.dumps(sans)}\n"
                'Reply with JSON only: {"bestMove": "<one move from the list>"}'
            )},
        ]
        text = self._request_with_retry(messages)
        if not text:
            raise OracleFailure("empty response")
        return parse_move_reply(board, text, moves)

    def _request_with_retry(self, messages) -> str:
        delay = 0.5
        for attempt in range(self.cfg.retries + 1):
            try:
                rsp = self.client.chat.completions.create(
                    model=self.cfg.model,
                    messages=messages,
                    response_format={"type": "json_object"},
                    timeout=self.cfg.timeout_s,
                )
                content = rsp.choices[0].message.content if rsp.choices else None
                return content.strip() if isinstance(content, str) else ""
            except Exception:
                if attempt >= self.cfg.retries:
                    raise
                time.sleep(min(delay * (2 ** attempt) * (0.8 + 0.4 * random.random()), 10.0))
        return ""


def parse_move_reply(board: chess.Board, text: str, moves: List[chess.Move]) -> chess.Move:
    """Read ``bestMove`` out of a JSON reply and check it against the legal moves."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise OracleFailure(f"malformed reply {text[:80]!r}") from e
    notation = data.get("bestMove") if isinstance(data, dict) else None
    if not isinstance(notation, str) or not notation.strip():
        raise OracleFailure(f"no bestMove in {text[:80]!r}")
    notation = notation.strip().rstrip("+#")

    for move in moves:
        if notation in (board.san(move).rstrip("+#"), move.uci()):
            return move
    raise OracleFailure(f"move {notation!r} is not legal")
