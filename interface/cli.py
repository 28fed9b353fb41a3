"""Terminal front end: play the computer from the command line."""

import argparse
from typing import List, Optional

import chess

from tvchess import configure_logging
from tvchess.config import CONFIG
from tvchess.core.search import Difficulty
from tvchess.main import GameController
from tvchess.session import TurnState

HELP = "Commands: <move> (e.g. e2e4, e7e8n), undo, redo, new [EASY|MEDIUM|HACKER] [white|black], help, quit"


def parse_move_text(text: str):
    """'e2e4' / 'e7e8q' -> (from, to, promotion); None if unreadable."""
    try:
        move = chess.Move.from_uci(text)
    except ValueError:
        return None
    return move.from_square, move.to_square, move.promotion


def play_opponent(controller: GameController):
    session = controller.session
    if session.state == TurnState.COMPUTING_OPPONENT_MOVE:
        print("THINKING...")
        session.request_opponent_move()


def run(controller: GameController, read=None, write=None):
    read = read or input
    write = write or print
    play_opponent(controller)
    while True:
        session = controller.session
        write(str(session.position))
        write("----------------------------")
        write(session.status_text())

        try:
            command = read("> ").strip()
        except EOFError:
            break
        if not command:
            continue
        word, *args = command.split()
        word = word.lower()

        if word in ("quit", "exit"):
            break
        if word == "help":
            write(HELP)
        elif word == "undo":
            if not controller.undo():
                write("Nothing to undo.")
        elif word == "redo":
            if not controller.redo():
                write("Nothing to redo.")
        elif word == "new":
            try:
                controller.new_game(*(args[:2]))
            except ValueError as e:
                write(f"Cannot start game: {e}")
                continue
            play_opponent(controller)
        else:
            parsed = parse_move_text(word)
            if parsed is None or not controller.play(*parsed):
                write("Illegal move, try again.")
                continue
            play_opponent(controller)

    write(f"Result: {controller.session.result.value}")


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Play chess against the computer.")
    parser.add_argument("--difficulty", choices=[d.value for d in Difficulty], default=CONFIG.session.difficulty)
    parser.add_argument("--color", choices=["white", "black"], default=CONFIG.session.human_color)
    parser.add_argument("--delay", type=float, default=None, help="opponent thinking delay in seconds")
    args = parser.parse_args(argv)

    configure_logging(CONFIG.log_level)
    controller = GameController(thinking_delay=args.delay, auto_reply=False)
    controller.new_game(args.difficulty, args.color)
    run(controller)


if __name__ == "__main__":
    main()
