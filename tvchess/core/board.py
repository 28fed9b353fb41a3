"""Board wrapper over python-chess acting as the rules authority for a game."""

from typing import List, Optional, Tuple

import chess


class ChessError(Exception):
    """Base class for game errors."""


class IllegalMoveRejected(ChessError):
    """A move or notation was not legal in the current position."""


class LedgerCorruption(ChessError):
    """A recorded notation could not be replayed."""


def is_draw(board: chess.Board) -> bool:
    """Stalemate, insufficient material, threefold repetition or the fifty-move rule."""
    return (
        board.is_stalemate()
        or board.is_insufficient_material()
        or board.halfmove_clock >= 100
        or board.is_repetition(3)
    )


def is_terminal(board: chess.Board) -> bool:
    return board.is_checkmate() or is_draw(board)


class ChessBoard:
    def __init__(self, fen: str = None):
        """Initialize from FEN or the standard starting position."""
        self.board = chess.Board(fen) if fen else chess.Board()

    def fen(self) -> str:
        """Return the current FEN."""
        return self.board.fen()

    def side_to_move(self) -> chess.Color:
        return self.board.turn

    def legal_moves(self) -> List[chess.Move]:
        return list(self.board.legal_moves)

    def piece_at(self, square: chess.Square) -> Optional[Tuple[chess.PieceType, chess.Color]]:
        piece = self.board.piece_at(square)
        if piece is None:
            return None
        return piece.piece_type, piece.color

    def resolve(self, from_square: chess.Square, to_square: chess.Square,
                promotion: Optional[chess.PieceType] = None) -> Optional[chess.Move]:
        """Match a from/to pair against the legal moves, promoting to a queen unless told otherwise."""
        piece = self.board.piece_at(from_square)
        if promotion is None and piece is not None and piece.piece_type == chess.PAWN:
            if chess.square_rank(to_square) in (0, 7):
                promotion = chess.QUEEN
        move = chess.Move(from_square, to_square, promotion=promotion)
        if move in self.board.legal_moves:
            return move
        return None

    def legal_targets(self, square: chess.Square) -> List[chess.Square]:
        """Destination squares reachable by the piece on `square`."""
        return sorted({m.to_square for m in self.board.legal_moves if m.from_square == square})

    def san(self, move: chess.Move) -> str:
        return self.board.san(move)

    def apply(self, move: chess.Move) -> str:
        """Push a legal move and return its SAN."""
        if move not in self.board.legal_moves:
            raise IllegalMoveRejected(f"Illegal move {move.uci()} in {self.board.fen()}")
        notation = self.board.san(move)
        self.board.push(move)
        return notation

    def apply_notation(self, notation: str) -> chess.Move:
        """Push a move given in SAN (or UCI as a fallback)."""
        try:
            return self.board.push_san(notation)
        except ValueError:
            pass
        try:
            move = chess.Move.from_uci(notation)
        except ValueError as e:
            raise IllegalMoveRejected(f"Unreadable move {notation!r}") from e
        self.apply(move)
        return move

    def undo_last(self) -> Optional[Tuple[chess.Move, str]]:
        """Pop the last move. Returns the move and its SAN, or None on an empty history."""
        if not self.board.move_stack:
            return None
        move = self.board.pop()
        return move, self.board.san(move)

    def last_move(self) -> Optional[chess.Move]:
        return self.board.peek() if self.board.move_stack else None

    def history_uci(self) -> List[str]:
        return [m.uci() for m in self.board.move_stack]

    def history_san(self) -> List[str]:
        replay = self.board.root()
        sans = []
        for move in self.board.move_stack:
            sans.append(replay.san(move))
            replay.push(move)
        return sans

    def ply_count(self) -> int:
        return len(self.board.move_stack)

    def is_checkmate(self) -> bool:
        return self.board.is_checkmate()

    def is_stalemate(self) -> bool:
        return self.board.is_stalemate()

    def is_draw(self) -> bool:
        return is_draw(self.board)

    def is_terminal(self) -> bool:
        return is_terminal(self.board)

    def snapshot(self) -> chess.Board:
        """Independent copy of the position and its move stack."""
        return self.board.copy()
