"""Score-seeded, diversity-aware ranking of scored candidates."""

from __future__ import annotations

from collections.abc import Sequence

from .config import ReasoningConfig
from .proposals import ScoredStep
from .scratchpad import State
from .similarity import text_distance


def sort_by_score(candidates: Sequence[ScoredStep]) -> list[ScoredStep]:
    # Stable: equal scores keep their incoming order.
    return sorted(candidates, key=lambda c: c.score.total_score, reverse=True)


def diversify(candidates: Sequence[ScoredStep]) -> list[ScoredStep]:
    """Farthest-first ordering seeded with the best-scoring candidate.

    Each next pick maximizes the minimum text distance to everything already
    picked; ties go to the higher score.
    """

    remaining = sort_by_score(candidates)
    if not remaining:
        return []

    picked = [remaining.pop(0)]
    nearest = [text_distance(c.text, picked[0].text) for c in remaining]

    while remaining:
        best_idx = 0
        for idx in range(1, len(remaining)):
            if nearest[idx] > nearest[best_idx]:
                best_idx = idx
            elif (
                nearest[idx] == nearest[best_idx]
                and remaining[idx].score.total_score > remaining[best_idx].score.total_score
            ):
                best_idx = idx

        chosen = remaining.pop(best_idx)
        nearest.pop(best_idx)
        picked.append(chosen)
        nearest = [min(d, text_distance(c.text, chosen.text)) for d, c in zip(nearest, remaining)]

    return picked


def select_top(candidates: Sequence[ScoredStep], top_m: int) -> list[ScoredStep]:
    """First ``top_m`` of the diversity order, presented by descending score."""

    return sort_by_score(diversify(candidates)[: max(1, int(top_m))])


def choose_step(top: Sequence[ScoredStep], state: State) -> ScoredStep:
    """Prefer the first candidate that does not repeat the previous step verbatim."""

    last = state.last_step
    if last is not None:
        previous = last.text.strip()
        for candidate in top:
            if candidate.text.strip() != previous:
                return candidate
    return top[0]


def should_search(chosen: ScoredStep, state: State, config: ReasoningConfig) -> bool:
    """Stagnation trigger: too little improvement over the previous step with a beam enabled."""

    last = state.last_step
    if last is None or config.min_improvement is None:
        return False
    if config.beam_width <= 1:
        return False
    previous = last.score.total_score if last.score is not None else 0.0
    return chosen.score.total_score - previous < config.min_improvement
