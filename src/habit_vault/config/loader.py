"""
habit-vault — client config loader.

File: src/habit_vault/config/loader.py

Purpose
- Load the effective ``ClientConfig`` from defaults, a TOML file, env vars and
  explicit overrides.

What should be included in this file
- Precedence logic: overrides > env (HABIT_VAULT_) > file > defaults.
- TOML loading via ``tomllib``.
- Deterministic environment variable mapping and coercion.
- Validation with one issue per offending field path.

Functional requirements
- Reject a config that embeds a private key instead of naming the env var
  that holds it.
- Resolve a relative ``logging.dir`` against the config file's directory.
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Final, Literal
from urllib.parse import urlparse

from habit_vault.constants import (
    ACTIVITY_LOG_LIMIT,
    DEFAULT_CHAIN_ID,
    DEFAULT_RECEIPT_TIMEOUT_SECONDS,
    NOTICE_DISMISS_SECONDS,
    NOTICE_ERROR_DISMISS_SECONDS,
)

DEFAULT_CONFIG_FILE: Final[str] = "habit_vault.toml"
ENV_PREFIX: Final[str] = "HABIT_VAULT_"
DEFAULT_SIGNER_KEY_ENV: Final[str] = "HABIT_VAULT_SIGNER_KEY"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_ADDRESS_RE: Final[re.Pattern[str]] = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE: Final[re.Pattern[str]] = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_ENV_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_LOG_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

ValueKind = Literal["str", "int", "float", "bool"]


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Effective client configuration."""

    rpc_url: str = ""
    contract_address: str = ""
    chain_id: int = DEFAULT_CHAIN_ID
    signer_key_env: str = DEFAULT_SIGNER_KEY_ENV
    receipt_timeout_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS
    success_dismiss_seconds: float = NOTICE_DISMISS_SECONDS
    error_dismiss_seconds: float = NOTICE_ERROR_DISMISS_SECONDS
    activity_limit: int = ACTIVITY_LOG_LIMIT
    log_level: str = "INFO"
    log_dir: str = "logs"
    log_to_stdout: bool = False


@dataclass(frozen=True, slots=True)
class _Binding:
    field_name: str
    path: tuple[str, ...]
    value_type: ValueKind


# TOML layout: [ledger], [session] and [logging] tables.
_BINDINGS: Final[tuple[_Binding, ...]] = (
    _Binding("rpc_url", ("ledger", "rpc_url"), "str"),
    _Binding("contract_address", ("ledger", "contract_address"), "str"),
    _Binding("chain_id", ("ledger", "chain_id"), "int"),
    _Binding("signer_key_env", ("ledger", "signer_key_env"), "str"),
    _Binding("receipt_timeout_seconds", ("ledger", "receipt_timeout_seconds"), "float"),
    _Binding("success_dismiss_seconds", ("session", "success_dismiss_seconds"), "float"),
    _Binding("error_dismiss_seconds", ("session", "error_dismiss_seconds"), "float"),
    _Binding("activity_limit", ("session", "activity_limit"), "int"),
    _Binding("log_level", ("logging", "level"), "str"),
    _Binding("log_dir", ("logging", "dir"), "str"),
    _Binding("log_to_stdout", ("logging", "to_stdout"), "bool"),
)
_BINDINGS_BY_FIELD: Final[dict[str, _Binding]] = {item.field_name: item for item in _BINDINGS}
_BINDINGS_BY_PATH: Final[dict[str, _Binding]] = {".".join(item.path): item for item in _BINDINGS}


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


def load_config(
    config_path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> ClientConfig:
    """Load effective config with deterministic precedence: overrides > env > file > defaults."""

    resolved_path = _resolve_config_path(config_path)
    env_map = os.environ if environ is None else environ

    values: dict[str, Any] = {}
    values.update(_values_from_file(_load_toml_file(resolved_path, required=config_path is not None)))
    values.update(_collect_env_overrides(env_map))
    values.update(_collect_explicit_overrides(overrides or {}))

    config = _build_config(values)
    if not Path(config.log_dir).is_absolute():
        config = replace(config, log_dir=_normalize_one_path(config.log_dir, resolved_path.parent))
    validate_config(config)
    return config


def validate_config(config: ClientConfig) -> ClientConfig:
    """Raise ``ConfigValidationError`` listing every invalid field."""
    issues: list[ConfigValidationIssue] = []

    def issue(field_name: str, message: str) -> None:
        issues.append(ConfigValidationIssue(".".join(_BINDINGS_BY_FIELD[field_name].path), message))

    if config.rpc_url:
        parsed = urlparse(config.rpc_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            issue("rpc_url", "must be an http(s) URL")
    if config.contract_address and not _ADDRESS_RE.fullmatch(config.contract_address):
        issue("contract_address", "must be a 0x-prefixed 20-byte hex address")
    if config.chain_id <= 0:
        issue("chain_id", "must be > 0")
    if _PRIVATE_KEY_RE.fullmatch(config.signer_key_env):
        issue("signer_key_env", "must name an environment variable, not contain a key")
    elif config.signer_key_env and not _ENV_NAME_RE.fullmatch(config.signer_key_env):
        issue("signer_key_env", "must be a valid environment variable name")
    if config.receipt_timeout_seconds <= 0:
        issue("receipt_timeout_seconds", "must be > 0")
    if config.success_dismiss_seconds <= 0:
        issue("success_dismiss_seconds", "must be > 0")
    if config.error_dismiss_seconds <= 0:
        issue("error_dismiss_seconds", "must be > 0")
    if config.activity_limit <= 0:
        issue("activity_limit", "must be > 0")
    if config.log_level.upper() not in _LOG_LEVELS:
        issue("log_level", f"must be one of {sorted(_LOG_LEVELS)}")

    if issues:
        raise ConfigValidationError(issues)
    return config


def _build_config(values: Mapping[str, Any]) -> ClientConfig:
    issues: list[ConfigValidationIssue] = []
    checked: dict[str, Any] = {}
    for name, value in values.items():
        binding = _BINDINGS_BY_FIELD[name]
        if _matches_kind(value, binding.value_type):
            checked[name] = float(value) if binding.value_type == "float" else value
        else:
            issues.append(
                ConfigValidationIssue(".".join(binding.path), f"expected {binding.value_type}")
            )
    if issues:
        raise ConfigValidationError(issues)
    return ClientConfig(**checked)


def _matches_kind(value: object, kind: ValueKind) -> bool:
    if kind == "bool":
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if kind == "int":
        return isinstance(value, int)
    if kind == "float":
        return isinstance(value, (int, float))
    return isinstance(value, str)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _values_from_file(payload: Mapping[str, Any]) -> dict[str, Any]:
    unknown: list[ConfigValidationIssue] = []
    values: dict[str, Any] = {}
    for table_name, table in sorted(payload.items()):
        if not isinstance(table, Mapping):
            unknown.append(ConfigValidationIssue(table_name, "expected a table"))
            continue
        for key, value in sorted(table.items()):
            binding = _BINDINGS_BY_PATH.get(f"{table_name}.{key}")
            if binding is None:
                unknown.append(ConfigValidationIssue(f"{table_name}.{key}", "unknown key"))
                continue
            values[binding.field_name] = value
    if unknown:
        raise ConfigValidationError(unknown)
    return values


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for binding in _BINDINGS:
        env_name = _env_name_for_path(binding.path)
        raw = environ.get(env_name)
        if raw is None:
            continue
        overrides[binding.field_name] = _coerce_env(raw, binding.value_type, env_name, binding.path)
    return overrides


def _collect_explicit_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key in sorted(overrides):
        binding = _BINDINGS_BY_FIELD.get(key) or _BINDINGS_BY_PATH.get(key)
        if binding is None:
            raise ConfigLoadError(f"invalid override key {key!r}")
        values[binding.field_name] = overrides[key]
    return values


def _coerce_env(
    raw: str,
    value_type: ValueKind,
    env_name: str,
    path: tuple[str, ...],
) -> object:
    value = raw.strip()
    if value_type == "str":
        return value
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    normalized = Path(os.path.normpath(str(candidate)))
    return normalized.as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ClientConfig",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_SIGNER_KEY_ENV",
    "ENV_PREFIX",
    "load_config",
    "validate_config",
]
