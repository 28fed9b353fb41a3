"""Static evaluator: material plus piece-square tables, positive favors White."""

from typing import Dict, List

import chess
from tvchess.config import CONFIG, EvalConfig


def _flatten(table: List[List[int]]) -> List[int]:
    """Rank-8-first 8x8 rows to a 64-entry list indexed by python-chess square."""
    return [table[7 - chess.square_rank(sq)][chess.square_file(sq)] for sq in chess.SQUARES]


class Evaluator:
    def __init__(self, cfg: EvalConfig = None):
        self.cfg = cfg or CONFIG.eval
        self._values: Dict[chess.PieceType, int] = {}
        self._pst: Dict[chess.PieceType, List[int]] = {}
        for pt in chess.PIECE_TYPES:
            p_name = chess.piece_name(pt).upper()
            self._values[pt] = self.cfg.piece_values.get(p_name, 0)
            table = self.cfg.piece_square_tables.get(p_name)
            self._pst[pt] = _flatten(table) if table else [0] * 64

    def evaluate(self, board: chess.Board) -> int:
        """Return static eval in centipawns from White's point of view."""
        score = 0
        for sq, piece in board.piece_map().items():
            pt = piece.piece_type
            if piece.color == chess.WHITE:
                score += self._values[pt] + self._pst[pt][sq]
            else:
                score -= self._values[pt] + self._pst[pt][chess.square_mirror(sq)]
        return score
