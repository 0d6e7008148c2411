"""Configuration: predefined keys from a .env file, environment key from os.environ.

.env layout::

    PREDEFINED_API_KEYS=AIza...,AIza...
    GEMINI_API_KEY_ALT1=AIza...
    GEMINI_API_KEY_ALT2=AIza...
    FAILOVER_BACKOFF_SECONDS=2
    GEMINI_MODEL=gemini-2.0-flash

``PREDEFINED_API_KEYS`` entries come first, then ``*_ALT<n>`` entries ordered
by ``n``. Blank entries are dropped. The environment key (``GOOGLE_API_KEY``,
then ``GEMINI_API_KEY``) is read from the process environment, falling back
to the same names in the .env file.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

from credential_failover.audit_log import AuditLog
from credential_failover.orchestrator import DEFAULT_BACKOFF_SECONDS, FailoverOrchestrator

ENV_CREDENTIAL_VARS = ("GOOGLE_API_KEY", "GEMINI_API_KEY")
PREDEFINED_LIST_VAR = "PREDEFINED_API_KEYS"
_ALT_PATTERN = re.compile(r"^(GOOGLE_API_KEY|GEMINI_API_KEY)_ALT(\d+)$")

DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TIMEOUT = 60.0


class ConfigError(ValueError):
    """Raised for malformed configuration values."""


def load_predefined_credentials(env_path: Optional[Path]) -> tuple[str, ...]:
    """Read the ordered predefined key list from a .env file."""
    if env_path is None:
        return ()
    values = dotenv_values(env_path)
    keys: list[str] = []
    listed = values.get(PREDEFINED_LIST_VAR) or ""
    keys.extend(k.strip() for k in listed.split(","))

    alts: list[tuple[int, str]] = []
    for var, value in values.items():
        m = _ALT_PATTERN.match(var or "")
        if m and value:
            alts.append((int(m.group(2)), value.strip()))
    keys.extend(v for _, v in sorted(alts, key=lambda a: a[0]))
    return tuple(k for k in keys if k)


def load_environment_credential(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    env = os.environ if environ is None else environ
    for var in ENV_CREDENTIAL_VARS:
        value = (env.get(var) or "").strip()
        if value:
            return value
    return None


def _float_setting(values: Mapping[str, Optional[str]], var: str, default: float) -> float:
    raw = values.get(var)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{var} must be a number, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{var} must not be negative, got {raw!r}")
    return value


@dataclass(frozen=True)
class FailoverSettings:
    predefined: tuple[str, ...] = ()
    environment_credential: Optional[str] = None
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS
    model: str = DEFAULT_MODEL
    timeout: float = DEFAULT_TIMEOUT

    def __repr__(self) -> str:
        return (
            f"FailoverSettings(predefined=<{len(self.predefined)} keys>, "
            f"environment_credential={'<set>' if self.environment_credential else None}, "
            f"backoff_seconds={self.backoff_seconds}, model={self.model!r}, timeout={self.timeout})"
        )

    @classmethod
    def load(
        cls,
        env_path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "FailoverSettings":
        env = os.environ if environ is None else environ
        file_values: dict[str, Optional[str]] = dict(dotenv_values(env_path)) if env_path else {}
        # Process environment wins over the .env file
        merged = {**file_values, **env}
        return cls(
            predefined=load_predefined_credentials(env_path),
            environment_credential=load_environment_credential(merged),  # type: ignore[arg-type]
            backoff_seconds=_float_setting(merged, "FAILOVER_BACKOFF_SECONDS", DEFAULT_BACKOFF_SECONDS),
            model=(merged.get("GEMINI_MODEL") or DEFAULT_MODEL).strip(),
            timeout=_float_setting(merged, "GEMINI_TIMEOUT", DEFAULT_TIMEOUT),
        )

    def orchestrator(self, audit_log: Optional[AuditLog] = None) -> FailoverOrchestrator:
        return FailoverOrchestrator(
            predefined=self.predefined,
            environment_credential=self.environment_credential,
            backoff_seconds=self.backoff_seconds,
            audit_log=audit_log,
        )

    def describe(self) -> dict:
        """Config health report. Never includes key values."""
        return {
            "hasEnvKey": self.environment_credential is not None,
            "envKeyLength": len(self.environment_credential or ""),
            "predefinedCount": len(self.predefined),
            "backoffSeconds": self.backoff_seconds,
            "model": self.model,
        }
