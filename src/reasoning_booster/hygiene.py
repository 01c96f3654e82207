"""Proposal hygiene: boilerplate rejection, history filtering, ranking and de-duplication."""

from __future__ import annotations

from collections.abc import Sequence

from .domain import fallback_proposals
from .heuristics import is_meta_opener
from .proposals import Proposal
from .scratchpad import State
from .similarity import NEAR_DUPLICATE, is_near_duplicate, text_similarity, tokenize

MAX_PROPOSAL_CHARS = 400
HINT_OVERLAP_TOKENS = 2


def is_acceptable(proposal: Proposal) -> bool:
    text = proposal.text.strip()
    if not text or len(text) > MAX_PROPOSAL_CHARS:
        return False
    return not is_meta_opener(text)


def hint_overlap(text: str, hints: Sequence[str]) -> bool:
    """True when ``text`` shares at least two tokens with any hint."""

    tokens = set(tokenize(text))
    for hint in hints:
        if len(tokens & set(tokenize(hint))) >= HINT_OVERLAP_TOKENS:
            return True
    return False


def rank_proposals(proposals: Sequence[Proposal], hints: Sequence[str]) -> list[Proposal]:
    """Verification hooks first, then hint overlap, then shorter text."""

    return sorted(
        proposals,
        key=lambda p: (
            0 if p.has_verification_hook else 1,
            0 if hint_overlap(p.text, hints) else 1,
            len(p.text),
        ),
    )


def dedupe(proposals: Sequence[Proposal], threshold: float = NEAR_DUPLICATE) -> list[Proposal]:
    kept: list[Proposal] = []
    for proposal in proposals:
        if any(text_similarity(proposal.text, other.text) >= threshold for other in kept):
            continue
        kept.append(proposal)
    return kept


def fill_with_fallbacks(kept: list[Proposal], state: State, limit: int) -> list[Proposal]:
    """Top up ``kept`` with fallback templates that are not near-duplicates of it.

    Templates that repeat scratchpad history are held back and only used when
    nothing else would leave the pool non-empty.
    """

    history = [step.text for step in state.steps]
    held_back: list[Proposal] = []
    filled = list(kept)
    for template in fallback_proposals(state.task, len(state.steps)):
        if len(filled) >= limit:
            break
        if is_near_duplicate(template.text, [p.text for p in filled]):
            continue
        if history and is_near_duplicate(template.text, history):
            held_back.append(template)
            continue
        filled.append(template)

    if not filled and held_back:
        filled.append(held_back[0])
    return filled


def filter_proposals(proposals: Sequence[Proposal], state: State, limit: int) -> list[Proposal]:
    """Clean, rank, top up and de-duplicate a raw candidate pool to at most ``limit`` items."""

    limit = max(1, int(limit))
    history = [step.text for step in state.steps]

    survivors = [p for p in proposals if is_acceptable(p)]
    if history:
        survivors = [p for p in survivors if not is_near_duplicate(p.text, history)]

    ranked = rank_proposals(survivors, state.hints)
    if len(ranked) < limit:
        ranked = fill_with_fallbacks(ranked, state, limit)

    return dedupe(ranked)[:limit]
