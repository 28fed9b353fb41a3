import logging
import random
import time
from enum import Enum
from typing import List, Optional, Tuple

import chess
from tvchess.config import CONFIG, SearchConfig
from tvchess.core.board import is_draw
from tvchess.core.evaluator import Evaluator
from tvchess.core.utils import format_search_info

log = logging.getLogger(__name__)

INF = 1000000
MATE_SCORE = CONFIG.eval.mate_score


class Difficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HACKER = "HACKER"

    @classmethod
    def parse(cls, value) -> "Difficulty":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


class SearchFailure(Exception):
    """The minimax search could not produce a move."""


class SearchEngine:
    def __init__(self, evaluator: Optional[Evaluator] = None, seed: Optional[int] = None,
                 cfg: Optional[SearchConfig] = None):
        self.evaluator = evaluator or Evaluator()
        self.cfg = cfg or CONFIG.search
        self.rng = random.Random(self.cfg.seed if seed is None else seed)
        self.nodes = 0
        self.last_score: Optional[int] = None

    def spawn(self) -> "SearchEngine":
        """Independent engine sharing this one's evaluator and settings, seeded from its generator."""
        return SearchEngine(self.evaluator, seed=self.rng.getrandbits(32), cfg=self.cfg)

    def depth_for(self, difficulty: Difficulty) -> int:
        depth = self.cfg.depths.get(Difficulty.parse(difficulty).value, 0)
        return max(0, min(depth, self.cfg.max_depth))

    def select_move(self, board: chess.Board, difficulty: Difficulty) -> Optional[chess.Move]:
        """Pick a move for the side to move. None only when there is no legal move."""
        moves = list(board.legal_moves)
        if not moves:
            return None

        depth = self.depth_for(difficulty)
        self.last_score = None
        if depth == 0:
            return self.rng.choice(moves)

        try:
            move, score = self.search_root(board.copy(), moves, depth)
        except Exception:
            log.exception("Search failed at depth %d for %s, playing a random move", depth, board.fen())
            return self.rng.choice(moves)

        self.last_score = score
        return move

    def search_root(self, board: chess.Board, moves: List[chess.Move], depth: int) -> Tuple[chess.Move, int]:
        """Unfolded first ply of the minimax so the move itself is reported.

        Root moves are shuffled and the best is only replaced on a strict
        improvement, so equally scored moves are picked uniformly at random.
        """
        self.nodes = 0
        start_time = time.time()
        maximizing = board.turn == chess.WHITE
        candidates = list(moves)
        self.rng.shuffle(candidates)

        alpha, beta = -INF, INF
        best_move = None
        best_score = -INF if maximizing else INF

        for move in candidates:
            board.push(move)
            score = self._minimax(board, depth - 1, alpha, beta, not maximizing, 1)
            board.pop()

            if maximizing:
                if score > best_score:
                    best_score, best_move = score, move
                alpha = max(alpha, best_score)
            else:
                if score < best_score:
                    best_score, best_move = score, move
                beta = min(beta, best_score)

        if best_move is None:
            raise SearchFailure(f"No move selected in {board.fen()}")

        log.debug(format_search_info(depth, best_score, self.nodes, time.time() - start_time,
                                     best_move, MATE_SCORE))
        return best_move, best_score

    def _minimax(self, board: chess.Board, depth: int, alpha: int, beta: int,
                 maximizing: bool, ply: int) -> int:
        self.nodes += 1

        # Mate is signed toward the side that delivered it; nearer mates score higher.
        if board.is_checkmate():
            return -(MATE_SCORE - ply) if board.turn == chess.WHITE else MATE_SCORE - ply
        if is_draw(board):
            return 0
        if depth <= 0:
            return self.evaluator.evaluate(board)

        moves = self._order_moves(board)

        if maximizing:
            best = -INF
            for move in moves:
                board.push(move)
                value = self._minimax(board, depth - 1, alpha, beta, False, ply + 1)
                board.pop()
                best = max(best, value)
                alpha = max(alpha, value)
                if beta <= alpha:
                    break
            return best

        best = INF
        for move in moves:
            board.push(move)
            value = self._minimax(board, depth - 1, alpha, beta, True, ply + 1)
            board.pop()
            best = min(best, value)
            beta = min(beta, value)
            if beta <= alpha:
                break
        return best

    def _order_moves(self, board: chess.Board) -> List[chess.Move]:
        """Captures first, otherwise generation order."""
        moves = list(board.legal_moves)
        return sorted(moves, key=lambda m: not board.is_capture(m))
