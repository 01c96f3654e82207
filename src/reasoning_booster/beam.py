"""Shallow look-ahead over branch heads with UCB1 allocation of the expansion budget."""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .config import ReasoningConfig
from .proposals import ScoredStep
from .scratchpad import State, apply_step

Expander = Callable[[State], Sequence[ScoredStep]]


@dataclass
class Branch:
    head: ScoredStep
    state: State
    cumulative: float
    prior: float
    pulls: int = 0
    trajectory: list[ScoredStep] = field(default_factory=list)

    def ucb(self, total_pulls: int, alpha: float, exploration: float) -> float:
        mean = self.cumulative / (self.pulls + 1)
        bonus = exploration * math.sqrt(math.log(total_pulls + 1) / max(1, self.pulls))
        return mean + self.prior * alpha + bonus


@dataclass(frozen=True)
class BeamResult:
    chosen: ScoredStep
    branches: tuple[Branch, ...]
    expansions: int


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def shallow_beam_search(
    config: ReasoningConfig,
    state: State,
    top: Sequence[ScoredStep],
    expand: Expander,
) -> BeamResult:
    """Return the head of the branch with the best cumulative trajectory score.

    ``expand`` produces scored candidates for a branch scratchpad; it is called
    once per pull, sequentially, because each pull depends on the statistics
    updated by the previous one. An empty expansion still counts as a pull.
    """

    if not top:
        raise ValueError("beam search needs at least one branch head")

    width = max(1, int(config.beam_width))
    depth = max(1, int(config.beam_depth))
    alpha = _clamp_unit(config.voi_alpha)

    branches = [
        Branch(
            head=head,
            state=apply_step(state, head),
            cumulative=head.score.total_score,
            prior=head.score.voi,
        )
        for head in top[:width]
    ]

    budget = (depth - 1) * width
    total_pulls = 0
    while total_pulls < budget:
        target = branches[0]
        target_ucb = target.ucb(total_pulls, alpha, config.ucb_exploration)
        for branch in branches[1:]:
            value = branch.ucb(total_pulls, alpha, config.ucb_exploration)
            if value > target_ucb:
                target, target_ucb = branch, value

        scored = list(expand(target.state))
        if scored:
            best = max(scored, key=lambda c: c.score.total_score)
            target.state = apply_step(target.state, best)
            target.cumulative += best.score.total_score
            target.prior = 0.7 * target.prior + 0.3 * best.score.voi
            target.trajectory.append(best)

        target.pulls += 1
        total_pulls += 1

    winner = branches[0]
    for branch in branches[1:]:
        if branch.cumulative > winner.cumulative:
            winner = branch

    return BeamResult(chosen=winner.head, branches=tuple(branches), expansions=total_pulls)
