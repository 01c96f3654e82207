"""Typed step proposals and their validation from loosely typed backend JSON."""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

MAX_OUTCOMES = 6
OUTCOME_SPLIT_RE = re.compile(r"[;/|,]")


@dataclass(frozen=True)
class ExpectedOutcome:
    label: str
    note: str | None = None


@dataclass(frozen=True)
class VerificationOutcome:
    label: str
    rule: str | None = None
    state_update: str | None = None
    prob: float | None = None


@dataclass(frozen=True)
class VerificationSpec:
    kind: str | None = None
    procedure: str | None = None
    outcomes: tuple[VerificationOutcome, ...] = ()
    cost: float | None = None
    log_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class Proposal:
    text: str
    rationale: str = ""
    how_to_verify: str | None = None
    expected_outcomes: tuple[ExpectedOutcome, ...] = ()
    verification: VerificationSpec | None = None

    @property
    def has_verification_hook(self) -> bool:
        return bool(self.how_to_verify and self.how_to_verify.strip())

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text, "rationale": self.rationale}
        if self.how_to_verify:
            payload["howToVerify"] = self.how_to_verify
        if self.expected_outcomes:
            payload["expectedOutcomes"] = [
                {"label": o.label, **({"note": o.note} if o.note else {})}
                for o in self.expected_outcomes
            ]
        if self.verification is not None:
            spec = self.verification
            payload["verification"] = {
                "kind": spec.kind,
                "procedure": spec.procedure,
                "outcomes": [
                    {
                        "label": o.label,
                        "rule": o.rule,
                        "stateUpdate": o.state_update,
                        "prob": o.prob,
                    }
                    for o in spec.outcomes
                ],
                "cost": spec.cost,
                "logFields": list(spec.log_fields),
            }
        return payload


@dataclass(frozen=True)
class ScoreBreakdown:
    rules_score: float
    redundancy_score: float
    consistency_score: float
    total_score: float
    entropy_boost: float = 0.0
    voi: float = 0.0
    cost: float = 1.0

    def to_dict(self) -> dict[str, float]:
        return {
            "rulesScore": self.rules_score,
            "redundancyScore": self.redundancy_score,
            "consistencyScore": self.consistency_score,
            "totalScore": self.total_score,
            "entropyBoost": self.entropy_boost,
            "voi": self.voi,
            "cost": self.cost,
        }


@dataclass(frozen=True)
class ScoredStep:
    proposal: Proposal
    score: ScoreBreakdown

    @property
    def text(self) -> str:
        return self.proposal.text

    @property
    def total_score(self) -> float:
        return self.score.total_score

    def to_dict(self) -> dict[str, Any]:
        return {"proposal": self.proposal.to_dict(), "score": self.score.to_dict()}


def split_outcome_labels(raw: str) -> list[str]:
    """Split ``a; b / c | d, e`` into at most six unique trimmed labels."""

    labels: list[str] = []
    for part in OUTCOME_SPLIT_RE.split(raw or ""):
        label = part.strip().strip(".").strip()
        if label and label not in labels:
            labels.append(label)
        if len(labels) >= MAX_OUTCOMES:
            break
    return labels


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _coerce_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def coerce_expected_outcomes(value: Any) -> tuple[ExpectedOutcome, ...]:
    """Accept a separator-delimited string, a list of strings or a list of ``{label, note}``."""

    items: list[ExpectedOutcome] = []
    seen: set[str] = set()

    def _add(label: str | None, note: str | None = None) -> None:
        if not label or label in seen or len(items) >= MAX_OUTCOMES:
            return
        seen.add(label)
        items.append(ExpectedOutcome(label=label, note=note))

    if isinstance(value, str):
        for label in split_outcome_labels(value):
            _add(label)
    elif isinstance(value, Iterable) and not isinstance(value, (bytes, Mapping)):
        for entry in value:
            if isinstance(entry, Mapping):
                _add(_clean_str(entry.get("label")), _clean_str(entry.get("note")))
            else:
                _add(_clean_str(entry))
    return tuple(items)


def coerce_verification(value: Any) -> VerificationSpec | None:
    if not isinstance(value, Mapping):
        return None

    outcomes: list[VerificationOutcome] = []
    raw_outcomes = value.get("outcomes")
    if isinstance(raw_outcomes, list):
        for entry in raw_outcomes[:MAX_OUTCOMES]:
            if isinstance(entry, Mapping):
                label = _clean_str(entry.get("label"))
                if not label:
                    continue
                outcomes.append(
                    VerificationOutcome(
                        label=label,
                        rule=_clean_str(entry.get("rule")),
                        state_update=_clean_str(entry.get("state_update", entry.get("stateUpdate"))),
                        prob=_coerce_float(entry.get("prob")),
                    )
                )
            else:
                label = _clean_str(entry)
                if label:
                    outcomes.append(VerificationOutcome(label=label))

    cost = _coerce_float(value.get("cost"))
    if cost is not None and cost < 0:
        cost = None

    raw_fields = value.get("log_fields", value.get("logFields"))
    log_fields: tuple[str, ...] = ()
    if isinstance(raw_fields, list):
        log_fields = tuple(f for f in (_clean_str(x) for x in raw_fields) if f)

    return VerificationSpec(
        kind=_clean_str(value.get("kind")),
        procedure=_clean_str(value.get("procedure")),
        outcomes=tuple(outcomes),
        cost=cost,
        log_fields=log_fields,
    )


def proposal_from_mapping(payload: Any) -> Proposal | None:
    """Validate one backend-supplied object; ``None`` when it has no usable text."""

    if not isinstance(payload, Mapping):
        return None
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        return None

    rationale = _clean_str(payload.get("rationale")) or ""
    how_to_verify = _clean_str(payload.get("how_to_verify", payload.get("howToVerify")))
    outcomes_raw = payload.get("expected_outcomes", payload.get("expectedOutcomes"))

    return Proposal(
        text=text.strip(),
        rationale=rationale,
        how_to_verify=how_to_verify,
        expected_outcomes=coerce_expected_outcomes(outcomes_raw),
        verification=coerce_verification(payload.get("verification")),
    )
