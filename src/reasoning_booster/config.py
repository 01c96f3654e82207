"""Session configuration and sampler settings loading."""

from __future__ import annotations

import json
import os
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from dotenv import dotenv_values

CONFIG_FILES = ("config.json", "config.local.json")
SECRETS_FILES = ("secrets.txt", "secrets.local.txt")

DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_CEREBRAS_BASE_URL = "https://api.cerebras.ai/v1"
DEFAULT_CEREBRAS_MODEL = "qwen2.5-72b-instruct"


@dataclass(frozen=True)
class ReasoningConfig:
    max_steps: int = 16
    num_candidates: int = 5
    top_m: int = 2
    allow_backtrack: bool = True

    # Verifier weights.
    w_rules: float = 0.6
    w_redundancy: float = 0.25
    w_consistency: float = 0.15

    # Sampling. ``use_sampling=None`` means "enable when a backend is configured".
    use_sampling: bool | None = None
    sampling_max_tokens: int = 800
    llm_max_calls: int = 8
    resample_on_parse_failure: bool = False

    # Stagnation control and shallow beam search.
    min_improvement: float | None = 0.01
    beam_width: int = 1
    beam_depth: int = 2
    voi_alpha: float = 0.5
    ucb_exploration: float = 0.3

    execute_verification: bool = False

    def with_overrides(self, **overrides: Any) -> "ReasoningConfig":
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if k in known and v is not None})

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "ReasoningConfig":
        """Build from snake_case or camelCase keys; unknown keys are ignored."""

        if not payload:
            return cls()
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in payload.items():
            name = _snake_case(str(key))
            if name in known:
                values[name] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _snake_case(name: str) -> str:
    name = re.sub(r"(?<=[a-z0-9])([A-Z])", r"_\1", name)
    return name.lower()


@dataclass(frozen=True)
class SamplerSettings:
    provider: str = "none"
    openai_api_key: str | None = None
    openai_model: str | None = None
    openai_base_url: str | None = None
    cerebras_api_key: str | None = None
    cerebras_model: str | None = None
    cerebras_base_url: str | None = None
    temperature: float = 0.2
    timeout_sec: int = 120
    max_retries: int = 2

    @property
    def has_backend(self) -> bool:
        return bool(self.openai_api_key or self.cerebras_api_key)

    def resolve_endpoint(self) -> tuple[str, str, str | None] | None:
        """Return ``(base_url, model, api_key)`` for the preferred configured provider."""

        if self.provider == "cerebras" and self.cerebras_api_key:
            return (
                (self.cerebras_base_url or DEFAULT_CEREBRAS_BASE_URL),
                self.cerebras_model or DEFAULT_CEREBRAS_MODEL,
                self.cerebras_api_key,
            )
        if self.openai_api_key:
            return (
                (self.openai_base_url or DEFAULT_OPENAI_BASE_URL),
                self.openai_model or DEFAULT_OPENAI_MODEL,
                self.openai_api_key,
            )
        if self.cerebras_api_key:
            return (
                (self.cerebras_base_url or DEFAULT_CEREBRAS_BASE_URL),
                self.cerebras_model or DEFAULT_CEREBRAS_MODEL,
                self.cerebras_api_key,
            )
        return None


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _load_secrets(paths: list[Path]) -> dict[str, str]:
    merged: dict[str, str] = {}
    for path in paths:
        if not path.exists():
            continue
        for key, value in dotenv_values(path).items():
            if key and value:
                merged[key] = value
    return merged


def load_sampler_settings(
    base_dir: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> SamplerSettings:
    """Merge ``config.json`` < ``config.local.json`` sampling blocks, then secrets files and env."""

    root = Path(base_dir) if base_dir is not None else Path.cwd()
    env = os.environ if environ is None else environ

    merged: dict[str, Any] = {}
    for name in CONFIG_FILES:
        sampling = _load_json(root / name).get("sampling")
        if isinstance(sampling, dict):
            merged.update({_snake_case(str(k)): v for k, v in sampling.items()})

    secrets = _load_secrets([root / name for name in SECRETS_FILES])

    def fill(field_name: str, var: str, *, secrets_first: bool) -> None:
        if merged.get(field_name):
            return
        sources = (secrets, env) if secrets_first else (env, secrets)
        for source in sources:
            value = source.get(var)
            if value:
                merged[field_name] = value
                return

    fill("cerebras_api_key", "CEREBRAS_API_KEY", secrets_first=True)
    fill("cerebras_model", "CEREBRAS_MODEL", secrets_first=True)
    fill("cerebras_base_url", "CEREBRAS_BASE_URL", secrets_first=True)
    fill("openai_api_key", "OPENAI_API_KEY", secrets_first=False)
    fill("openai_model", "OPENAI_MODEL", secrets_first=False)
    fill("openai_base_url", "OPENAI_BASE_URL", secrets_first=False)

    if not merged.get("provider"):
        if merged.get("cerebras_api_key"):
            merged["provider"] = "cerebras"
        elif merged.get("openai_api_key"):
            merged["provider"] = "openai"
        else:
            merged["provider"] = "none"

    known = {f.name for f in fields(SamplerSettings)}
    return SamplerSettings(**{k: v for k, v in merged.items() if k in known})
