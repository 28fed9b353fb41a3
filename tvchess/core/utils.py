from typing import Optional

import chess


def format_search_info(depth: int, score: Optional[int], nodes: int, elapsed: float,
                       best: Optional[chess.Move], mate_score: int) -> str:
    best_str = best.uci() if best else "-"
    nps = int(nodes / elapsed) if elapsed > 0 else 0

    if score is None:
        score_str = "-"
    elif abs(score) > mate_score - 100:
        mate_in = (mate_score - abs(score) + 1) // 2
        score_str = f"mate {mate_in if score > 0 else -mate_in}"
    else:
        score_str = f"cp {score}"

    return (f"depth {depth} score {score_str} nodes {nodes} nps {nps} "
            f"time {int(elapsed * 1000)}ms best {best_str}")
