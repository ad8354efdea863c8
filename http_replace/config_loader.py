"""Config Loader - Loads runtime configuration and replace rules.

Handles loading YAML config files with environment variable substitution
and single rules stored as JSON.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from http_replace.models import ReplaceRule
from http_replace.transport import HttpxTransport


class ConfigError(Exception):
    """Raised when configuration loading fails."""


class TransportConfig(BaseModel):
    """Settings for the HTTP transport shared by all rules."""

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to CA bundle")
    follow_redirects: bool = Field(default=True, description="Follow 3xx redirects")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every request"
    )


class RuntimeConfig(BaseModel):
    """Top-level runtime configuration file."""

    model_config = ConfigDict(extra="forbid")

    transport: TransportConfig = Field(default_factory=TransportConfig)
    rules: dict[str, ReplaceRule] = Field(default_factory=dict, description="Named rules")


def load_runtime_config(config_path: Path) -> RuntimeConfig:
    """Load runtime configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return RuntimeConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def load_rule_json(rule_path: Path) -> ReplaceRule:
    """Load a single rule stored as a JSON object."""
    if not rule_path.exists():
        raise ConfigError(f"Rule file not found: {rule_path}")

    try:
        with open(rule_path, "r", encoding="utf-8") as f:
            raw_rule = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in rule file: {e}") from e

    try:
        return ReplaceRule.model_validate(raw_rule)
    except ValidationError as e:
        raise ConfigError(f"Invalid rule structure: {e}") from e


def get_rule(config: RuntimeConfig, name: str) -> ReplaceRule:
    """Return the named rule, listing the available names on failure."""
    if name not in config.rules:
        available = ", ".join(sorted(config.rules)) or "(none)"
        raise ConfigError(f"Rule '{name}' not found in config. Available: {available}")
    return config.rules[name]


def build_transport(config: TransportConfig) -> HttpxTransport:
    """Create an HttpxTransport from transport settings."""
    return HttpxTransport(
        timeout=config.timeout,
        verify_ssl=config.verify_ssl,
        ca_bundle=config.ca_bundle,
        headers=config.headers or None,
        follow_redirects=config.follow_redirects,
    )


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
