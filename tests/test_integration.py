"""
Integration test suite for tvchess.

Tests components working together end-to-end:
- GameController (automatic replies, restarts dropping stale results)
- Oracle move source with a stubbed OpenAI client
- FastAPI REST API
- Command line front end
"""

import json
import random
from types import SimpleNamespace
from unittest.mock import patch

import chess
import pytest

from tvchess.config import OracleConfig
from tvchess.core.search import Difficulty, SearchEngine
from tvchess.main import GameController
from tvchess.oracle import MoveOracle, OracleFailure, parse_move_reply
from tvchess.session import GameResult, TurnState


def fake_client(*replies):
    """OpenAI-shaped client whose completions return `replies` in order (exceptions are raised)."""
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        reply = replies[min(len(calls), len(replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        message = SimpleNamespace(content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    client.calls = calls
    return client


def make_oracle(*replies, retries=0):
    cfg = OracleConfig(enabled=True, model="test-model", timeout_s=1.0, retries=retries)
    return MoveOracle(cfg=cfg, client=fake_client(*replies), rng=random.Random(0))


# ════════════════════════════════════════════════════════════════════════════
#  GAME CONTROLLER
# ════════════════════════════════════════════════════════════════════════════


class TestGameController:
    def make_controller(self, **kwargs):
        kwargs.setdefault("engine", SearchEngine(seed=4))
        kwargs.setdefault("thinking_delay", 0)
        return GameController(**kwargs)

    def test_starts_awaiting_human(self):
        c = self.make_controller()
        assert c.session.state == TurnState.AWAITING_HUMAN_MOVE
        assert c.session.fen == chess.STARTING_FEN

    def test_reply_scheduled_after_human_move(self):
        c = self.make_controller()
        assert c.play("e2", "e4")
        c.wait(timeout=5)
        assert c.session.state == TurnState.AWAITING_HUMAN_MOVE
        assert len(c.session.history()) == 2
        assert c.undo()
        assert c.session.fen == chess.STARTING_FEN
        assert c.redo()
        assert len(c.session.history()) == 2

    def test_illegal_move_schedules_nothing(self):
        c = self.make_controller()
        assert c.play("e2", "e5") is False
        assert c.session._worker is None

    def test_human_black_gets_opening_reply(self):
        c = self.make_controller()
        c.new_game(Difficulty.MEDIUM, "black")
        c.wait(timeout=10)
        snap = c.snapshot()
        assert len(snap.history) == 1
        assert snap.state == TurnState.AWAITING_HUMAN_MOVE
        assert snap.difficulty == Difficulty.MEDIUM

    def test_restart_drops_pending_reply(self):
        c = self.make_controller(thinking_delay=0.3)
        old = c.session
        c.play("e2", "e4")
        c.new_game("easy", "white")
        old.wait_for_opponent(timeout=5)
        assert old.closed
        assert old.history() == ["e4"]
        assert c.session is not old
        assert c.session.fen == chess.STARTING_FEN

    def test_bad_color_keeps_current_session(self):
        c = self.make_controller()
        current = c.session
        with pytest.raises(ValueError):
            c.new_game("easy", "green")
        assert c.session is current
        assert not current.closed

    def test_sessions_get_their_own_engine(self):
        c = self.make_controller()
        first = c.session
        second = c.new_game("medium", "white")
        assert isinstance(first.engine, SearchEngine)
        assert first.engine is not second.engine
        assert first.engine is not c.engine
        assert first.engine.rng is not second.engine.rng

    def test_seeded_controller_replies_reproducibly(self):
        replies = []
        for _ in range(2):
            c = self.make_controller(engine=SearchEngine(seed=12))
            c.new_game("easy", "white")
            c.play("e2", "e4")
            c.wait(timeout=5)
            replies.append(c.session.history())
        assert replies[0] == replies[1]

    def test_oracle_drives_opponent(self):
        oracle = make_oracle(json.dumps({"bestMove": "e5"}))
        c = self.make_controller(oracle=oracle)
        c.play("e2", "e4")
        c.wait(timeout=5)
        assert c.session.history() == ["e4", "e5"]


# ════════════════════════════════════════════════════════════════════════════
#  ORACLE
# ════════════════════════════════════════════════════════════════════════════


class TestOracle:
    def test_san_reply(self):
        oracle = make_oracle('{"bestMove": "Nf3"}')
        assert oracle.select_move(chess.Board()) == chess.Move.from_uci("g1f3")

    def test_uci_reply(self):
        oracle = make_oracle('{"bestMove": "d2d4"}')
        assert oracle.select_move(chess.Board()) == chess.Move.from_uci("d2d4")

    def test_check_suffix_tolerated(self):
        board = chess.Board("rnbqkbnr/pppp1ppp/8/4p3/6P1/5P2/PPPPP2P/RNBQKBNR b KQkq - 0 2")
        oracle = make_oracle('{"bestMove": "Qh4"}')
        assert oracle.select_move(board) == chess.Move.from_uci("d8h4")

    def test_prompt_lists_legal_moves(self):
        oracle = make_oracle('{"bestMove": "e4"}')
        oracle.select_move(chess.Board())
        request = oracle.client.calls[0]
        assert request["model"] == "test-model"
        prompt = request["messages"][-1]["content"]
        assert chess.STARTING_FEN in prompt
        assert '"Nf3"' in prompt
        assert "White" in prompt

    @pytest.mark.parametrize("reply", [
        '{"bestMove": "Ke2"}',        # illegal
        '{"bestMove": ""}',           # empty
        '{"move": "e4"}',             # wrong key
        "e4",                         # not JSON
        "",                           # nothing
        '["e4"]',                     # not an object
    ])
    def test_bad_reply_falls_back_to_legal_move(self, reply):
        board = chess.Board()
        move = make_oracle(reply).select_move(board)
        assert move in board.legal_moves

    def test_transport_error_falls_back(self):
        board = chess.Board()
        move = make_oracle(TimeoutError("slow")).select_move(board)
        assert move in board.legal_moves

    def test_retry_then_success(self):
        oracle = make_oracle(ConnectionError("reset"), '{"bestMove": "c4"}', retries=1)
        with patch("tvchess.oracle.time.sleep"):
            move = oracle.select_move(chess.Board())
        assert move == chess.Move.from_uci("c2c4")
        assert len(oracle.client.calls) == 2

    def test_no_legal_moves(self):
        board = chess.Board("rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 0 1")
        oracle = make_oracle('{"bestMove": "e4"}')
        assert oracle.select_move(board) is None
        assert oracle.client.calls == []

    def test_parse_move_reply_raises(self):
        board = chess.Board()
        with pytest.raises(OracleFailure):
            parse_move_reply(board, "{not json", list(board.legal_moves))


# ════════════════════════════════════════════════════════════════════════════
#  FASTAPI REST API
# ════════════════════════════════════════════════════════════════════════════


class TestAPILogging:
    def test_module_applies_configured_log_level(self):
        import importlib

        import interface.api
        from tvchess.config import CONFIG

        with patch("tvchess.configure_logging") as configure:
            importlib.reload(interface.api)
        configure.assert_called_once_with(CONFIG.log_level)


class TestAPIIntegration:
    """Tests FastAPI REST API endpoints."""

    @pytest.fixture(autouse=True)
    def setup_client(self):
        from fastapi.testclient import TestClient
        from interface.api import app, controller

        self.client = TestClient(app)
        self.controller = controller
        # Fresh, instant game before each test
        controller.thinking_delay = 0
        controller.engine = SearchEngine(seed=8)
        controller.oracle = None
        controller.new_game(Difficulty.EASY, "white")

    def test_get_game_initial(self):
        response = self.client.get("/game")
        assert response.status_code == 200
        data = response.json()
        assert data["fen"] == chess.STARTING_FEN
        assert data["state"] == "awaiting-human-move"
        assert data["result"] == "none"
        assert data["status"] == "YOUR TURN"
        assert data["can_undo"] is False
        assert data["history"] == []

    def test_move_then_reply(self):
        response = self.client.post("/game/move", json={"from_square": "e2", "to_square": "e4"})
        assert response.status_code == 200
        assert response.json()["applied"] is True
        self.controller.wait(timeout=5)
        data = self.client.get("/game").json()
        assert len(data["history"]) == 2
        assert data["history"][0] == "e4"
        assert data["can_undo"] is True

    def test_illegal_move_not_applied(self):
        response = self.client.post("/game/move", json={"from_square": "e2", "to_square": "e5"})
        assert response.status_code == 200
        data = response.json()
        assert data["applied"] is False
        assert data["fen"] == chess.STARTING_FEN

    def test_invalid_square_returns_400(self):
        response = self.client.post("/game/move", json={"from_square": "x9", "to_square": "e4"})
        assert response.status_code == 400

    def test_invalid_promotion_returns_400(self):
        response = self.client.post("/game/move", json={"from_square": "e2", "to_square": "e4", "promotion": "x"})
        assert response.status_code == 400

    def test_undo_redo_flow(self):
        self.client.post("/game/move", json={"from_square": "e2", "to_square": "e4"})
        self.controller.wait(timeout=5)
        after = self.client.get("/game").json()["fen"]

        r = self.client.post("/game/undo").json()
        assert r["applied"] is True
        assert r["fen"] == chess.STARTING_FEN
        assert r["can_redo"] is True

        r = self.client.post("/game/redo").json()
        assert r["applied"] is True
        assert r["fen"] == after

    def test_undo_on_fresh_game(self):
        r = self.client.post("/game/undo").json()
        assert r["applied"] is False

    def test_new_game_as_black(self):
        r = self.client.post("/game/new", json={"difficulty": "MEDIUM", "human_color": "black"})
        assert r.status_code == 200
        assert r.json()["human_color"] == "black"
        assert r.json()["difficulty"] == "MEDIUM"
        self.controller.wait(timeout=10)
        data = self.client.get("/game").json()
        assert len(data["history"]) == 1
        assert data["state"] == "awaiting-human-move"

    def test_new_game_bad_input(self):
        assert self.client.post("/game/new", json={"difficulty": "GODLIKE"}).status_code == 422
        assert self.client.post("/game/new", json={"human_color": "green"}).status_code == 400

    def test_legal_targets(self):
        r = self.client.get("/game/targets/g1")
        assert r.status_code == 200
        assert r.json()["targets"] == ["f3", "h3"]
        assert self.client.get("/game/targets/zz").status_code == 400


# ════════════════════════════════════════════════════════════════════════════
#  COMMAND LINE
# ════════════════════════════════════════════════════════════════════════════


class TestCLI:
    def run_cli(self, commands, **kwargs):
        from interface.cli import run

        controller = GameController(engine=SearchEngine(seed=6), thinking_delay=0, auto_reply=False)
        controller.new_game(kwargs.get("difficulty", "EASY"), kwargs.get("color", "white"))
        inputs = iter(commands)
        out = []

        def read(prompt):
            try:
                return next(inputs)
            except StopIteration:
                raise EOFError

        run(controller, read=read, write=out.append)
        return controller, out

    def test_play_undo_redo(self):
        controller, out = self.run_cli(["e2e4", "undo", "redo", "quit"])
        assert len(controller.session.history()) == 2
        assert controller.session.history()[0] == "e4"
        assert out[-1] == "Result: none"

    def test_illegal_and_garbage(self):
        controller, out = self.run_cli(["e2e5", "hello", ""])
        assert out.count("Illegal move, try again.") == 2
        assert controller.session.fen == chess.STARTING_FEN

    def test_nothing_to_undo(self):
        _, out = self.run_cli(["undo", "redo"])
        assert "Nothing to undo." in out
        assert "Nothing to redo." in out

    def test_new_game_as_black(self):
        controller, out = self.run_cli(["new easy black"])
        assert controller.session.human_color == chess.BLACK
        assert len(controller.session.history()) == 1
        assert "THINKING..." in out

    def test_new_game_bad_args(self):
        _, out = self.run_cli(["new impossible"])
        assert any(line.startswith("Cannot start game") for line in out)

    def test_fools_mate_reported(self):
        from interface.cli import run

        class Scripted:
            moves = iter(["e7e5", "d8h4"])

            def select_move(self, board, difficulty):
                return chess.Move.from_uci(next(self.moves))

        controller = GameController(engine=Scripted(), thinking_delay=0, auto_reply=False)
        inputs = iter(["f2f3", "g2g4", "a2a3", "quit"])
        out = []
        run(controller, read=lambda _: next(inputs), write=out.append)
        assert controller.session.result == GameResult.BLACK_WINS
        assert "Black Wins!" in out
        assert "Illegal move, try again." in out

    def test_main_parses_arguments(self):
        from interface import cli

        with patch("builtins.input", side_effect=EOFError):
            with patch("builtins.print") as printed:
                cli.main(["--difficulty", "MEDIUM", "--color", "white", "--delay", "0"])
        printed.assert_any_call("Result: none")
