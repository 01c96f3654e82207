"""Parsing utilities that turn raw generator output into step proposals."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field

from .heuristics import has_action_word, is_placeholder
from .proposals import ExpectedOutcome, Proposal, proposal_from_mapping, split_outcome_labels

HIDDEN_REASONING_RE = re.compile(
    r"<(think|thinking|reasoning)>[\s\S]*?</\1>",
    flags=re.IGNORECASE,
)
FENCED_BLOCK_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n([\s\S]*?)```")
PARAGRAPH_SPLIT_RE = re.compile(r"\r?\n\s*\r?\n")
LABEL_LINE_RE = re.compile(
    r"^\s*(?:[-*•]\s*|\d+[.)]\s*)?\**"
    r"(text|step|rationale|how[_ ]to[_ ]verify|verify|outcomes|expected[_ ]outcomes)"
    r"\**\s*(?::|-\s)\s*(.*)$",
    flags=re.IGNORECASE,
)
BULLET_RE = re.compile(r"^\s*(?:[-*•+]|\d{1,3}[.)])\s+(.*)$")
OBJECT_ARRAY_START_RE = re.compile(r"\[\s*\{")

MAX_LABELED_TEXT_CHARS = 200
MAX_CONTINUATION_TEXT_CHARS = 220
MAX_BRACKET_ATTEMPTS = 400


@dataclass(frozen=True)
class ExtractionResult:
    proposals: list[Proposal]
    source: str


@dataclass
class _Draft:
    text: str = ""
    rationale: str = ""
    how_to_verify: str = ""
    outcomes: list[str] = field(default_factory=list)

    def attach(self, label: str, value: str) -> None:
        key = _canonical_label(label)
        value = value.strip()
        if key == "text":
            self.text = value
        elif key == "rationale":
            self.rationale = f"{self.rationale} {value}".strip() if self.rationale else value
        elif key == "how_to_verify":
            self.how_to_verify = value
        elif key == "outcomes":
            self.outcomes = split_outcome_labels(value)

    def build(self, rationale_default: str) -> Proposal | None:
        text = self.text.strip()
        if not _acceptable_prose_text(text):
            return None
        return Proposal(
            text=text,
            rationale=self.rationale.strip() or rationale_default,
            how_to_verify=self.how_to_verify.strip() or None,
            expected_outcomes=tuple(ExpectedOutcome(label=label) for label in self.outcomes),
        )


def _canonical_label(label: str) -> str:
    lowered = label.lower().replace(" ", "_")
    if lowered in {"text", "step"}:
        return "text"
    if lowered in {"how_to_verify", "verify"}:
        return "how_to_verify"
    if lowered in {"outcomes", "expected_outcomes"}:
        return "outcomes"
    return lowered


def _acceptable_prose_text(text: str) -> bool:
    if not text or len(text) > MAX_LABELED_TEXT_CHARS:
        return False
    if is_placeholder(text):
        return False
    return has_action_word(text)


def strip_hidden_reasoning(text: str) -> str:
    """Remove ``<think>...</think>`` style spans emitted by reasoning models."""

    return HIDDEN_REASONING_RE.sub("", text or "")


def _try_parse_json_array(raw: str) -> list[object] | None:
    try:
        payload = json.loads(raw)
    except (ValueError, RecursionError):
        return None
    return payload if isinstance(payload, list) else None


def _proposals_from_array(items: list[object]) -> list[Proposal]:
    proposals: list[Proposal] = []
    for item in items:
        proposal = proposal_from_mapping(item)
        if proposal is not None:
            proposals.append(proposal)
    return proposals


def parse_fenced_json(text: str) -> list[Proposal]:
    """Parse fenced code blocks as JSON arrays, preferring the last block."""

    blocks = FENCED_BLOCK_RE.findall(text)
    for block in reversed(blocks):
        items = _try_parse_json_array(block.strip())
        if not items:
            continue
        proposals = _proposals_from_array(items)
        if proposals:
            return proposals
    return []


def parse_embedded_json(text: str) -> list[Proposal]:
    """Find the rightmost, shortest JSON array that yields at least one proposal.

    Only ``[`` positions followed by ``{`` are tried, and each ``]`` gets its
    own attempt budget, so bracketed citations after the array cannot hide it.
    """

    end = text.rfind("]")
    while end >= 0:
        attempts = 0
        start = text.rfind("[", 0, end)
        while start >= 0 and attempts < MAX_BRACKET_ATTEMPTS:
            if OBJECT_ARRAY_START_RE.match(text, start):
                attempts += 1
                items = _try_parse_json_array(text[start : end + 1])
                if items:
                    proposals = _proposals_from_array(items)
                    if proposals:
                        return proposals
            start = text.rfind("[", 0, start)
        end = text.rfind("]", 0, end)
    return []


def parse_labeled_blocks(text: str) -> list[Proposal]:
    """Parse blank-line separated blocks with ``Text:``/``Rationale:``/... labels."""

    proposals: list[Proposal] = []
    for paragraph in PARAGRAPH_SPLIT_RE.split(text):
        draft = _Draft()
        has_text_label = False
        current: str | None = None
        for line in paragraph.splitlines():
            match = LABEL_LINE_RE.match(line)
            if match:
                current = _canonical_label(match.group(1))
                if current == "text":
                    has_text_label = True
                draft.attach(match.group(1), match.group(2))
                continue
            extra = line.strip()
            if not extra or current is None:
                continue
            # Wrapped value: continue the last labeled field.
            if current == "text":
                draft.text = f"{draft.text} {extra}".strip()
            elif current == "rationale":
                draft.rationale = f"{draft.rationale} {extra}".strip()
            elif current == "how_to_verify":
                draft.how_to_verify = f"{draft.how_to_verify} {extra}".strip()
        if not has_text_label:
            continue
        proposal = draft.build("Parsed from labeled prose")
        if proposal is not None:
            proposals.append(proposal)
    return proposals


def parse_bullets(text: str) -> list[Proposal]:
    """Parse bulleted or numbered lines, attaching continuation lines to the open item."""

    proposals: list[Proposal] = []
    draft: _Draft | None = None

    def _flush() -> None:
        if draft is None:
            return
        proposal = draft.build("Parsed from prose list")
        if proposal is not None and all(p.text != proposal.text for p in proposals):
            proposals.append(proposal)

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        bullet = BULLET_RE.match(line)
        content = bullet.group(1).strip() if bullet else line
        label = LABEL_LINE_RE.match(content)

        if label and _canonical_label(label.group(1)) != "text":
            if draft is not None:
                draft.attach(label.group(1), label.group(2))
            continue

        if bullet:
            _flush()
            draft = _Draft()
            draft.text = label.group(2).strip() if label else content
            continue

        if draft is None:
            continue
        if label:
            draft.text = label.group(2).strip()
            continue
        if has_action_word(line):
            combined = f"{draft.text} {line}".strip()
            if len(combined) <= MAX_CONTINUATION_TEXT_CHARS:
                draft.text = combined

    _flush()
    return proposals


def extract_with_source(raw: str | None, k: int) -> ExtractionResult:
    """Run the extraction tiers in order and report which one produced proposals."""

    limit = max(0, int(k))
    if not raw or limit == 0:
        return ExtractionResult(proposals=[], source="none")

    try:
        cleaned = strip_hidden_reasoning(raw)
        tiers = (
            ("fenced_json", parse_fenced_json),
            ("embedded_json", parse_embedded_json),
            ("labeled_blocks", parse_labeled_blocks),
            ("bullets", parse_bullets),
        )
        for source, parser in tiers:
            proposals = parser(cleaned)
            if proposals:
                return ExtractionResult(proposals=proposals[:limit], source=source)
    except Exception:  # pragma: no cover - extraction must never raise
        return ExtractionResult(proposals=[], source="error")

    return ExtractionResult(proposals=[], source="none")


def extract_proposals(raw: str | None, k: int) -> list[Proposal]:
    """Parse raw generator text into at most ``k`` proposals; never raises."""

    return extract_with_source(raw, k).proposals
