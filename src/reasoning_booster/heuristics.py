"""Regex classifiers used to judge free-form step text.

Each predicate is a pure function over a string so the vocabulary can be
changed without touching the extraction, filtering or scoring code.
"""

from __future__ import annotations

import re

ACTION_WORDS: tuple[str, ...] = (
    "weigh",
    "check",
    "measure",
    "compare",
    "label",
    "record",
    "test",
    "verify",
    "observe",
    "split",
    "identify",
    "define",
    "draw",
    "pick",
    "choose",
    "select",
    "list",
    "count",
    "compute",
    "calculate",
    "estimate",
    "mark",
    "assign",
    "relabel",
    "rename",
    "set",
    "use",
    "apply",
    "remove",
    "eliminate",
    "isolate",
    "swap",
    "confirm",
    "run",
    "try",
    "write",
    "state",
    "clarify",
    "simplify",
    "introduce",
    "design",
    "plan",
    "rephrase",
    "consider",
    "reduce",
    "increase",
    "log",
    "skip",
    "group",
    "sort",
    "collect",
    "inspect",
    "evaluate",
    "rank",
    "map",
    "draft",
    "prioritize",
    "categorize",
    "create",
    "build",
    "find",
    "determine",
)

ACTION_WORD_RE = re.compile(
    r"\b(?:" + "|".join(ACTION_WORDS) + r")(?:s|es|ed|ing)?\b",
    flags=re.IGNORECASE,
)

META_OPENER_RE = re.compile(
    r"^(?:we\s+are|standard\s+approach|each\s+step\s+must|we\s+must|the\s+task|important:)",
    flags=re.IGNORECASE,
)

VAGUE_RE = re.compile(r"obviously|evidently|clearly|trivial|without proof", flags=re.IGNORECASE)

CONTRADICTION_RE = re.compile(
    r"in contradiction|in conflict|contradicts|inconsistent",
    flags=re.IGNORECASE,
)

INFO_GAIN_RE = re.compile(
    r"if\s|then\s|case|outcome|tilt|balance|verify|check|observe|measure",
    flags=re.IGNORECASE,
)

FINAL_STEP_RE = re.compile(r"^final\s+step\s*:", flags=re.IGNORECASE)

OBSERVATION_RE = re.compile(
    r"(?:draw|pick|measure|record|log|check|verify|test|observe|weigh)\b",
    flags=re.IGNORECASE,
)
RELABEL_RE = re.compile(r"(?:label|assign|relabel|rename)\b", flags=re.IGNORECASE)
DEDUCTION_OPENER_RE = re.compile(r"^\s*(?:if|then|therefore|hence|thus)\b", flags=re.IGNORECASE)
IF_THEN_RE = re.compile(r"\bif\b.*\bthen\b", flags=re.IGNORECASE | re.DOTALL)
CONJUNCTION_RE = re.compile(r"\band\b|\bthen\b", flags=re.IGNORECASE)

STEP_VERBS: tuple[str, ...] = (
    "draw",
    "pick",
    "measure",
    "record",
    "log",
    "reduce",
    "increase",
    "check",
    "verify",
    "label",
    "assign",
    "test",
    "apply",
    "set",
    "use",
    "skip",
    "relabel",
    "rename",
    "observe",
    "weigh",
)

_PLACEHOLDER_RE = re.compile(
    r"^(?:\.{2,}|…|<[^>]*>|\[[^\]]*\]|\{[^}]*\}|tbd|todo|n/?a|none|-+|"
    r"text|step|rationale|how[_ ]to[_ ]verify|outcomes?|expected[_ ]outcomes?|"
    r"your (?:step|text|action)[^.]*|action description[^.]*|short step[^.]*)\.?$",
    flags=re.IGNORECASE,
)
_LABEL_ECHO_RE = re.compile(
    r"^(?:text|step|rationale|how[_ ]to[_ ]verify|outcomes?)\s*[:\-]",
    flags=re.IGNORECASE,
)


def has_action_word(text: str) -> bool:
    return bool(ACTION_WORD_RE.search(text or ""))


def is_meta_opener(text: str) -> bool:
    return bool(META_OPENER_RE.match((text or "").strip()))


def count_vague_terms(text: str) -> int:
    return len(VAGUE_RE.findall(text or ""))


def has_contradiction_marker(text: str) -> bool:
    return bool(CONTRADICTION_RE.search(text or ""))


def count_info_gain_hits(text: str) -> int:
    return len(INFO_GAIN_RE.findall(text or ""))


def is_final_step(text: str) -> bool:
    return bool(FINAL_STEP_RE.match((text or "").strip()))


def is_observation(text: str) -> bool:
    return bool(OBSERVATION_RE.search(text or ""))


def is_relabel_or_assign(text: str) -> bool:
    return bool(RELABEL_RE.search(text or ""))


def is_deduction(text: str) -> bool:
    text = text or ""
    return bool(DEDUCTION_OPENER_RE.search(text) or IF_THEN_RE.search(text))


def count_conjunctions(text: str) -> int:
    return len(CONJUNCTION_RE.findall(text or ""))


def step_verbs(text: str) -> set[str]:
    """Return the action verbs from the step vocabulary present as whole words."""

    found: set[str] = set()
    for verb in STEP_VERBS:
        if re.search(rf"\b{verb}\b", text or "", flags=re.IGNORECASE):
            found.add(verb)
    return found


def is_placeholder(text: str) -> bool:
    """True for template echoes such as ``...``, ``<step>`` or ``Text:``."""

    stripped = (text or "").strip().strip("\"'`")
    if not stripped:
        return True
    if _PLACEHOLDER_RE.match(stripped):
        return True
    return bool(_LABEL_ECHO_RE.match(stripped))
