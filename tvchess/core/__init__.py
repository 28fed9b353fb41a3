"""Core game components: board adapter, evaluator and search."""

from .board import ChessBoard, ChessError, IllegalMoveRejected, LedgerCorruption
from .evaluator import Evaluator
from .search import Difficulty, SearchEngine, SearchFailure
