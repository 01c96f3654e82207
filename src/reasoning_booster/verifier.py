"""Deterministic multi-component scoring of step proposals."""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .config import ReasoningConfig
from .heuristics import (
    count_conjunctions,
    count_info_gain_hits,
    count_vague_terms,
    has_contradiction_marker,
    is_deduction,
    is_final_step,
    is_meta_opener,
    is_observation,
    is_relabel_or_assign,
    step_verbs,
)
from .proposals import Proposal, ScoreBreakdown
from .scratchpad import State
from .similarity import avg_similarity, extract_keywords, max_similarity

SINGLE_ACTION_RE = re.compile(
    r"single|one|exactly\s+one|only\s+one|adjust\s+one\s+factor\s+at\s+a\s+time|one\s+draw",
    flags=re.IGNORECASE,
)
MINIMALITY_RE = re.compile(r"minimal\s+steps|minimal|minimize|as\s+few\s+steps|efficient", flags=re.IGNORECASE)
PAREN_LIST_RE = re.compile(r"\(([^)]{3,})\)")

MAX_ENTROPY_BOOST = 0.25
ENTROPY_SCALE = 0.12
MAX_VOI_CONTRIBUTION = 0.2

OutcomeHeuristic = Callable[[str], set[str]]


@dataclass(frozen=True)
class TaskConstraints:
    single_action_only: bool
    minimality_desired: bool
    enumerated_factors: tuple[str, ...]


@dataclass(frozen=True)
class StepClassification:
    action_verbs: frozenset[str]
    mentioned_factors: frozenset[str]
    is_observation: bool
    is_relabel_or_assign: bool
    is_deduction: bool
    conjunctions: int


def weighing_outcome_heuristic(text: str) -> set[str]:
    """Scale-style outcomes: balance, left/right tilt, heavier/lighter."""

    found: set[str] = set()
    if re.search(r"balance", text):
        found.add("balance")
    if re.search(r"left\s*(?:tilt|heavy)", text):
        found.add("left")
    if re.search(r"right\s*(?:tilt|heavy)", text):
        found.add("right")
    if re.search(r"heavier|lighter", text):
        found.add("polarity")
    return found


def generic_outcome_heuristic(text: str) -> set[str]:
    """Alternatives signalled by separators and if/then/else phrasing."""

    found: set[str] = set()
    separators = len(re.findall(r";|\bor\b|/", text))
    if separators >= 1:
        found.add("alt1")
    if separators >= 2:
        found.add("alt2")
    if re.search(r"\bif\b.*\bthen\b", text, flags=re.DOTALL):
        found.add("if")
        if re.search(r"\belse\b", text):
            found.add("else")
    return found


DEFAULT_OUTCOME_HEURISTICS: tuple[OutcomeHeuristic, ...] = (
    weighing_outcome_heuristic,
    generic_outcome_heuristic,
)


def entropy_from_count(n: int) -> float:
    if n <= 1:
        return 0.0
    return min(MAX_ENTROPY_BOOST, ENTROPY_SCALE * math.log2(n))


def estimate_outcome_entropy(
    proposal: Proposal,
    heuristics: Sequence[OutcomeHeuristic] = DEFAULT_OUTCOME_HEURISTICS,
) -> float:
    """Information-gain proxy from the number of distinct declared outcomes."""

    if proposal.verification is not None:
        labels = {o.label.strip().lower() for o in proposal.verification.outcomes if o.label.strip()}
        if len(labels) >= 2:
            return entropy_from_count(len(labels))

    labels = {o.label.strip().lower() for o in proposal.expected_outcomes if o.label.strip()}
    if len(labels) >= 2:
        return entropy_from_count(len(labels))

    joined = "\n".join(s for s in (proposal.how_to_verify, proposal.rationale) if s).lower()
    if not joined:
        return 0.0
    detected: set[str] = set()
    for heuristic in heuristics:
        detected |= heuristic(joined)
    return entropy_from_count(len(detected))


def extract_constraints(task: str) -> TaskConstraints:
    single = bool(SINGLE_ACTION_RE.search(task))
    minimal = bool(MINIMALITY_RE.search(task))

    factors: list[str] = []
    match = PAREN_LIST_RE.search(task)
    if match:
        factors = [s.strip().lower() for s in re.split(r"[,;/]", match.group(1))]
        factors = [s for s in factors if 0 < len(s) <= 40]
    else:
        parts = re.split(r"[:,]", task)
        if len(parts) > 2:
            tail = ",".join(parts[1:])
            candidates = [s.strip().lower() for s in re.split(r"[,;]", tail) if s.strip()]
            if 3 <= len(candidates) <= 12:
                factors = candidates

    return TaskConstraints(
        single_action_only=single,
        minimality_desired=minimal,
        enumerated_factors=tuple(dict.fromkeys(factors)),
    )


def classify_step(text: str, constraints: TaskConstraints) -> StepClassification:
    lowered = text.lower()
    mentioned = {f for f in constraints.enumerated_factors if len(f) >= 2 and f in lowered}
    return StepClassification(
        action_verbs=frozenset(step_verbs(text)),
        mentioned_factors=frozenset(mentioned),
        is_observation=is_observation(text),
        is_relabel_or_assign=is_relabel_or_assign(text),
        is_deduction=is_deduction(text),
        conjunctions=count_conjunctions(text),
    )


def objective_adjustment(constraints: TaskConstraints, cls: StepClassification) -> float:
    """Reward single-factor observations; penalize multi-factor or chained actions."""

    gain = 0.0
    penalty = 0.0

    if cls.is_observation:
        gain += 0.3

    if constraints.enumerated_factors:
        if len(cls.mentioned_factors) == 1:
            gain += 0.15
        elif len(cls.mentioned_factors) > 1:
            penalty -= 0.25

    if cls.is_relabel_or_assign:
        gain += 0.1

    if constraints.single_action_only:
        if len(cls.action_verbs) > 1 or cls.conjunctions > 0:
            penalty -= 0.2
        if len(cls.mentioned_factors) > 1:
            penalty -= 0.25

    if constraints.minimality_desired:
        if cls.is_observation:
            gain += 0.1
        elif cls.is_deduction:
            penalty -= 0.05

    return gain + penalty


class Verifier:
    """Pure scoring function over (task, scratchpad, proposal)."""

    def __init__(
        self,
        config: ReasoningConfig | None = None,
        *,
        outcome_heuristics: Sequence[OutcomeHeuristic] = DEFAULT_OUTCOME_HEURISTICS,
    ) -> None:
        self.config = config or ReasoningConfig()
        self.outcome_heuristics = tuple(outcome_heuristics)

    def score_step(self, task: str, state: State, proposal: Proposal) -> ScoreBreakdown:
        text = proposal.text.strip()
        rules = 0.0

        if len(text) <= 200:
            rules += 0.3
        elif len(text) <= 400:
            rules += 0.1
        else:
            rules -= 0.2

        vague = count_vague_terms(text)
        if vague:
            rules -= min(0.6, 0.2 * vague)

        if proposal.has_verification_hook:
            rules += 0.2

        entropy_boost = estimate_outcome_entropy(proposal, self.outcome_heuristics)
        rules += entropy_boost

        cost = 1.0
        if proposal.verification is not None and proposal.verification.cost is not None:
            cost = proposal.verification.cost
        voi = entropy_boost / max(1.0, cost)
        rules += min(MAX_VOI_CONTRIBUTION, voi)

        hits = count_info_gain_hits(text)
        if hits:
            rules += min(0.3, 0.08 * hits)

        if is_meta_opener(text):
            rules -= 0.35

        if is_final_step(text):
            rules += 0.15 if proposal.has_verification_hook else 0.05

        constraints = extract_constraints(task)
        rules += objective_adjustment(constraints, classify_step(text, constraints))

        if extract_keywords(text) & extract_keywords(task):
            rules += 0.15
        else:
            rules -= 0.1

        history = [step.text for step in state.steps]
        if history:
            top = max_similarity(text, history)
            if top >= 0.95:
                redundancy = -0.5
            elif top >= 0.8:
                redundancy = -0.3
            else:
                redundancy = 0.1
            mean = avg_similarity(text, history)
            if mean < 0.3:
                rules += 0.2
            elif mean < 0.5:
                rules += 0.1
        else:
            redundancy = 0.05

        consistency = -0.3 if has_contradiction_marker(text) else 0.05

        total = (
            self.config.w_rules * rules
            + self.config.w_redundancy * redundancy
            + self.config.w_consistency * consistency
        )
        return ScoreBreakdown(
            rules_score=rules,
            redundancy_score=redundancy,
            consistency_score=consistency,
            total_score=total,
            entropy_boost=entropy_boost,
            voi=voi,
            cost=cost,
        )


def create_verifier(config: ReasoningConfig) -> Verifier:
    return Verifier(config)
