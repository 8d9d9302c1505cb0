"""Run configuration.

A single frozen ``RunConfig`` is built once per invocation and handed to
every component. Values come from the defaults below, then environment
variables, then explicit overrides (usually CLI options).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from secureupdate.core.models import FixMode, UnknownRiskPolicy

DEFAULT_TRUSTED_REPOSITORIES = ("core", "extra", "multilib")
DEFAULT_SCAN_REPOSITORIES = ("aur", "chaotic-aur")

ENV_VARS = {
    "model": "SECURE_UPDATE_MODEL",
    "post_update_model": "SECURE_UPDATE_POST_MODEL",
    "parallel_jobs": "PARALLEL_JOBS",
    "fetch_timeout": "SECURE_UPDATE_FETCH_TIMEOUT",
    "oracle_timeout": "SECURE_UPDATE_ORACLE_TIMEOUT",
    "scan_official": "SECURE_UPDATE_SCAN_OFFICIAL",
    "fix_mode": "SECURE_UPDATE_FIX_MODE",
    "unknown_risk_policy": "SECURE_UPDATE_UNKNOWN_RISK",
    "fetch_backend": "SECURE_UPDATE_FETCH_BACKEND",
    "post_update": "SECURE_UPDATE_POST_UPDATE",
    "display_limit": "SECURE_UPDATE_DISPLAY_LIMIT",
    "aur_base_url": "AUR_BASE_URL",
    "prompt_file": "SECURE_UPDATE_PROMPT_FILE",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ConfigError(ValueError):
    pass


class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    model: str = "sonnet"
    post_update_model: str = "sonnet"
    parallel_jobs: int = Field(10, ge=1, le=64)
    fetch_timeout: int = Field(60, ge=1)
    oracle_timeout: int = Field(600, ge=1)
    skip_scan: bool = False
    full_scan: bool = False
    scan_official: bool = False
    trusted_repositories: Tuple[str, ...] = DEFAULT_TRUSTED_REPOSITORIES
    scan_repositories: Tuple[str, ...] = DEFAULT_SCAN_REPOSITORIES
    display_limit: int = Field(20, ge=0)
    post_update: bool = True
    fix_mode: FixMode = FixMode.MANUAL
    auto_fix_delay: int = Field(10, ge=0)
    unknown_risk_policy: UnknownRiskPolicy = UnknownRiskPolicy.BLOCK
    fetch_backend: str = Field("yay", pattern="^(yay|aur-http)$")
    aur_base_url: str = "https://aur.archlinux.org"
    oracle_command: str = "claude"
    prompt_file: Optional[Path] = None
    update_command: Tuple[str, ...] = ("yay", "-Syu")
    update_timeout: int = Field(3600, ge=1)
    fix_command_timeout: int = Field(600, ge=1)


def _coerce_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _from_env() -> dict:
    values = {}
    bool_fields = {"scan_official", "post_update"}
    for field, var in ENV_VARS.items():
        raw = os.environ.get(var, "").strip()
        if not raw:
            continue
        values[field] = _coerce_bool(var, raw) if field in bool_fields else raw
    return values


def load_config(**overrides) -> RunConfig:
    """Build the run configuration; ``None`` overrides are ignored."""
    values = _from_env()
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return RunConfig(**values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigError(f"Invalid configuration: {problems}") from exc
