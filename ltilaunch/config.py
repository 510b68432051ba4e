"""
Launch Verifier Configuration

Immutable settings for signature validation and the consumer key registry,
loadable from JSON, YAML or TOML files with environment variable overrides.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Final, FrozenSet, List, Mapping, Optional, Union

import cryptography.hazmat.primitives.asymmetric.rsa as rsa
import cryptography.hazmat.primitives.serialization as serialization
import toml
import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

logger = logging.getLogger(__name__)

HMAC_SHA1: Final[str] = "HMAC-SHA1"
HMAC_SHA256: Final[str] = "HMAC-SHA256"
RSA_SHA1: Final[str] = "RSA-SHA1"
PLAINTEXT: Final[str] = "PLAINTEXT"
SUPPORTED_SIGNATURE_METHODS: Final[FrozenSet[str]] = frozenset({
    HMAC_SHA1, HMAC_SHA256, RSA_SHA1, PLAINTEXT,
})

# OAuth 1.0a timestamps are accepted within five minutes of the server clock
DEFAULT_TIMESTAMP_TOLERANCE_SECONDS: Final[int] = 300

ENV_TIMESTAMP_TOLERANCE: Final[str] = "LTILAUNCH_TIMESTAMP_TOLERANCE"
ENV_SIGNATURE_METHODS: Final[str] = "LTILAUNCH_SIGNATURE_METHODS"


class ConfigurationError(Exception):
    """Configuration could not be loaded or failed validation."""

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        super().__init__(message)
        self.violations = violations or []

    def __str__(self) -> str:
        message = super().__str__()
        if self.violations:
            details = "\n".join(f"  - {v}" for v in self.violations)
            message += f"\n\nViolation Details:\n{details}"
        return message


class VerifierSettings(BaseModel):
    """
    Settings for launch signature validation.

    Invariants:
    - Only signature methods oauthlib can verify are accepted
    - Consumer secrets are never rendered in reprs or logs
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp_tolerance_seconds: int = Field(
        DEFAULT_TIMESTAMP_TOLERANCE_SECONDS, ge=0,
        description="Maximum clock skew accepted for oauth_timestamp",
    )
    signature_methods: FrozenSet[str] = Field(
        frozenset({HMAC_SHA1, HMAC_SHA256}),
        description="Accepted oauth_signature_method values",
    )
    consumers: Dict[str, SecretStr] = Field(
        default_factory=dict,
        description="Consumer key to shared secret",
    )
    rsa_public_keys: Dict[str, str] = Field(
        default_factory=dict,
        description="Consumer key to PEM public key for RSA-SHA1",
    )

    @field_validator("signature_methods", mode="before")
    @classmethod
    def normalize_signature_methods(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(str(item).strip().upper() for item in v if str(item).strip())
        return v

    @field_validator("signature_methods")
    @classmethod
    def validate_signature_methods(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        unknown = sorted(v - SUPPORTED_SIGNATURE_METHODS)
        if unknown:
            raise ValueError(f"Unsupported signature methods: {', '.join(unknown)}")
        if not v:
            raise ValueError("At least one signature method must be enabled")
        return v

    @field_validator("rsa_public_keys")
    @classmethod
    def validate_rsa_public_keys(cls, v: Dict[str, str]) -> Dict[str, str]:
        """Validate RSA public key format and strength."""
        for consumer_key, pem in v.items():
            try:
                public_key = serialization.load_pem_public_key(pem.encode())
            except (ValueError, TypeError) as e:
                raise ValueError(f"Invalid public key for {consumer_key}: {e}")
            if not isinstance(public_key, rsa.RSAPublicKey):
                raise ValueError(f"Key for {consumer_key} must be an RSA public key")
            if public_key.key_size < 1024:
                raise ValueError(f"RSA key for {consumer_key} must be at least 1024 bits")
        return v

    def secret_for(self, consumer_key: str) -> Optional[str]:
        """Shared secret for a consumer key, or None when the key is unknown."""
        secret = self.consumers.get(consumer_key)
        return secret.get_secret_value() if secret is not None else None

    def rsa_public_key_for(self, consumer_key: str) -> Optional[str]:
        return self.rsa_public_keys.get(consumer_key)


def _read_config_file(config_path: Path) -> Dict[str, Any]:
    """Load a configuration file, choosing the format from its extension."""
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        content = f.read()

    suffix = config_path.suffix.lower()
    try:
        if suffix == '.json':
            data = json.loads(content)
        elif suffix in ('.yml', '.yaml'):
            data = yaml.safe_load(content)
        elif suffix == '.toml':
            data = toml.loads(content)
        else:
            raise ConfigurationError(f"Unsupported configuration format: {config_path}")
    except (json.JSONDecodeError, yaml.YAMLError, toml.TomlDecodeError) as e:
        raise ConfigurationError(f"Cannot parse configuration file {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")
    # Settings may live under an [ltilaunch] table shared with other tools
    return data.get("ltilaunch", data)


def _apply_environment(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    overridden = dict(data)
    if ENV_TIMESTAMP_TOLERANCE in environ:
        overridden["timestamp_tolerance_seconds"] = environ[ENV_TIMESTAMP_TOLERANCE]
    if ENV_SIGNATURE_METHODS in environ:
        overridden["signature_methods"] = environ[ENV_SIGNATURE_METHODS]
    return overridden


def build_settings(data: Optional[Mapping[str, Any]] = None,
                   environ: Optional[Mapping[str, str]] = None) -> VerifierSettings:
    """
    Validate raw configuration data into settings.

    Args:
        data: Raw configuration mapping
        environ: Environment used for overrides; defaults to ``os.environ``

    Returns:
        VerifierSettings instance

    Raises:
        ConfigurationError: if the data violates the settings schema
    """
    merged = _apply_environment(dict(data or {}), os.environ if environ is None else environ)
    try:
        return VerifierSettings(**merged)
    except ValidationError as e:
        violations = [
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigurationError(
            f"Configuration validation failed with {len(violations)} errors", violations
        ) from e


def load_settings(config_path: Union[str, Path],
                  environ: Optional[Mapping[str, str]] = None) -> VerifierSettings:
    """Load and validate settings from a JSON, YAML or TOML file."""
    config_path = Path(config_path)
    settings = build_settings(_read_config_file(config_path), environ)
    logger.info(
        "Loaded verifier settings from %s (%d consumers, methods: %s)",
        config_path, len(settings.consumers), ", ".join(sorted(settings.signature_methods)),
    )
    return settings


__all__ = [
    "ConfigurationError",
    "VerifierSettings",
    "build_settings",
    "load_settings",
]
