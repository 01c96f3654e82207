"""Scratchpad state machine: append, loop/stagnation detection, backtracking and hints."""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from .proposals import ExpectedOutcome, ScoreBreakdown, ScoredStep
from .similarity import NEAR_DUPLICATE, is_near_duplicate

MAX_HINTS = 20
MAX_HINTS_PER_ITERATION = 3
SUMMARY_STEPS = 5


@dataclass(frozen=True)
class StepEntry:
    index: int
    text: str
    rationale: str
    score: ScoreBreakdown | None = None
    how_to_verify: str | None = None
    expected_outcomes: tuple[ExpectedOutcome, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"index": self.index, "text": self.text, "rationale": self.rationale}
        if self.how_to_verify:
            payload["howToVerify"] = self.how_to_verify
        if self.expected_outcomes:
            payload["expectedOutcomes"] = [o.label for o in self.expected_outcomes]
        if self.score is not None:
            payload["score"] = self.score.to_dict()
        return payload


@dataclass(frozen=True)
class State:
    task: str
    steps: tuple[StepEntry, ...] = ()
    hints: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()
    created_at: str = field(default_factory=lambda: dt.datetime.now(dt.timezone.utc).isoformat())

    @property
    def last_step(self) -> StepEntry | None:
        return self.steps[-1] if self.steps else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task": self.task,
            "steps": [step.to_dict() for step in self.steps],
            "createdAt": self.created_at,
            "hints": list(self.hints),
            "uncertainty": {"notes": list(self.notes)},
        }


def initialize_scratchpad(task: str) -> State:
    return State(task=task)


def apply_step(state: State, chosen: ScoredStep, *, execute_verification: bool = False) -> State:
    """Append ``chosen`` as the next step; optionally log its verification state updates."""

    proposal = chosen.proposal
    entry = StepEntry(
        index=len(state.steps),
        text=proposal.text,
        rationale=proposal.rationale,
        score=chosen.score,
        how_to_verify=proposal.how_to_verify,
        expected_outcomes=proposal.expected_outcomes,
    )

    notes = state.notes
    if execute_verification and proposal.verification is not None:
        updates = [
            f"step {entry.index}: {outcome.label} -> {outcome.state_update}"
            for outcome in proposal.verification.outcomes
            if outcome.state_update
        ]
        notes = notes + tuple(updates)

    return replace(state, steps=state.steps + (entry,), notes=notes)


def is_stagnating(state: State) -> bool:
    if len(state.steps) < 2:
        return False
    return state.steps[-1].text.strip() == state.steps[-2].text.strip()


def is_looping(state: State) -> bool:
    seen: set[str] = set()
    for step in state.steps:
        if step.text in seen:
            return True
        seen.add(step.text)
    return False


def backtrack(state: State) -> State:
    if not state.steps:
        return state
    return replace(state, steps=state.steps[:-1])


def _push_hints(hints: tuple[str, ...], new_hints: Iterable[str], limit: int | None) -> tuple[str, ...]:
    pool = list(hints)
    added = 0
    for hint in new_hints:
        if limit is not None and added >= limit:
            break
        text = (hint or "").strip()
        if not text or is_near_duplicate(text, pool, NEAR_DUPLICATE):
            continue
        pool.append(text)
        added += 1
        if len(pool) > MAX_HINTS:
            pool = pool[-MAX_HINTS:]
    return tuple(pool)


def update_hints_from_candidates(state: State, candidates: Sequence[ScoredStep]) -> State:
    """Promote up to three well-verified candidate texts into the shared hint pool."""

    eligible = (c.proposal.text for c in candidates if c.proposal.has_verification_hook)
    hints = _push_hints(state.hints, eligible, MAX_HINTS_PER_ITERATION)
    if hints == state.hints:
        return state
    return replace(state, hints=hints)


def add_hints(state: State, hints: Iterable[str]) -> State:
    """Merge caller-supplied hints under the same cap and near-duplicate rule."""

    merged = _push_hints(state.hints, hints, None)
    if merged == state.hints:
        return state
    return replace(state, hints=merged)


def summarize_solution(state: State) -> str:
    recent: list[str] = []
    for step in reversed(state.steps):
        if len(recent) >= SUMMARY_STEPS:
            break
        text = step.text.strip()
        if text and text not in recent:
            recent.append(text)
    recent.reverse()

    bullets = "\n".join(f"- {text}" for text in recent) if recent else "- (no steps)"
    return f"Summary:\nTask: {state.task}\n{bullets}"
