# src/reclaimer/core/config.py
"""
Configuration schema and loading for Reclaimer.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from reclaimer.contracts.policy import RetentionPolicy
from reclaimer.core.logging import SECRET_FIELD_NAMES, mask_dsn


class SettingsError(Exception):
    """Raised when a settings or policy file cannot be loaded."""

    pass


class CatalogSettings(BaseModel):
    """Persistent state store connection."""

    model_config = {"frozen": True}

    # NOTE: str instead of Path - Path mangles DSNs like "postgresql://user@host/db"
    url: str = Field(
        default="sqlite:///./catalog.db",
        description="Full SQLAlchemy database URL",
    )
    query_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Server-side time bound applied to every selection query",
    )
    echo: bool = Field(default=False, description="Echo SQL statements")


class IpfsSettings(BaseModel):
    """Content-addressed backend (IPFS HTTP API) connection."""

    model_config = {"frozen": True}

    api_url: str = Field(default="http://localhost:5001/api/v0", description="IPFS RPC API base URL")
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    pin_ls_timeout_seconds: float = Field(default=10.0, gt=0, description="Timeout for pin/ls presence checks")
    pin_rm_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for pin/rm (recursive unpins are slow)")


class S3Settings(BaseModel):
    """Object-store backend (S3 or S3-compatible) connection.

    Credentials may be left unset to use the standard boto3 credential chain.
    """

    model_config = {"frozen": True}

    bucket: str = Field(default="content", min_length=1)
    region: str = Field(default="us-east-1")
    endpoint_url: str | None = Field(default=None, description="Custom endpoint for S3-compatible services")
    access_key_id: str | None = None
    secret_access_key: str | None = None
    force_path_style: bool = Field(default=True, description="Path-style addressing (required by most S3-compatible services)")
    connect_timeout_seconds: float = Field(default=5.0, gt=0)
    read_timeout_seconds: float = Field(default=30.0, gt=0)


class RetrySettings(BaseModel):
    """Adapter retry behavior for transient backend failures."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Maximum attempts including the first")
    initial_delay_seconds: float = Field(default=1.0, gt=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=30.0, gt=0, description="Maximum backoff delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")


class PacingSettings(BaseModel):
    """Deliberate backend rate limits applied by the executor.

    These protect the storage services from overload; they are not a
    performance knob.
    """

    model_config = {"frozen": True}

    batch_delay_seconds: float = Field(default=2.0, ge=0, description="Pause between batches")
    item_delay_seconds: float = Field(default=0.1, ge=0, description="Pause after each item that called a backend")


class SafetySettings(BaseModel):
    """Guard rails for destructive runs."""

    model_config = {"frozen": True}

    require_confirmation: bool = Field(default=True, description="CLI prompts before executing unless --yes is given")
    max_batch_size: int = Field(default=100, gt=0, description="Upper bound on any policy's batch_size")


class ClassifierRules(BaseModel):
    """Heuristics used to classify storage locators.

    They are approximate and tied to legacy data shapes, so they are data:
    tighten or loosen them in settings.yaml, not in code.

    Example YAML:
        classifier:
          content_hash_pattern: "^Qm[a-zA-Z0-9]{44}$"
          resolutions: [1080p, 720p, 480p, 360p]
          include_base_prefix: true
    """

    model_config = {"frozen": True}

    content_address_scheme: str = Field(default="ipfs://", min_length=1)
    content_hash_pattern: str = Field(default=r"^Qm[a-zA-Z0-9]{44}$", description="Full-match pattern for a content hash")
    session_token_pattern: str = Field(
        default=r"^[a-f0-9]{32}$",
        description="Bare tokens matching this are upload-session ids, not stored objects",
    )
    extension_pattern: str = Field(default=r"\.[a-zA-Z0-9]{2,5}$", description="Search pattern for a file extension")
    null_tokens: frozenset[str] = Field(default=frozenset({"null", "undefined"}), description="Legacy placeholders meaning 'absent'")
    resolutions: tuple[str, ...] = Field(default=("1080p", "720p", "480p", "360p"))
    default_playlist: str = Field(default="default.m3u8")
    thumbnails_folder: str = Field(default="thumbnails")
    include_base_prefix: bool = Field(default=True, description="Also delete everything under <permlink>/")
    original_prefixes: tuple[str, ...] = Field(
        default=("originals", "uploads", "raw", "source"),
        description="Folders where a copy of the original upload may live",
    )

    @field_validator("content_hash_pattern", "session_token_pattern", "extension_pattern")
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid regular expression {v!r}: {e}") from e
        return v


class PreviewSettings(BaseModel):
    """Preview report shape."""

    model_config = {"frozen": True}

    sample_size: int = Field(default=10, ge=0, description="Records listed individually in a preview")


class LoggingSettings(BaseModel):
    """Log output configuration."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_output: bool = Field(default=False, description="Emit JSON lines instead of console output")


class ReclaimerSettings(BaseModel):
    """Top-level Reclaimer configuration.

    Every section has defaults, so an empty settings.yaml is valid.
    """

    model_config = {"frozen": True}

    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    ipfs: IpfsSettings = Field(default_factory=IpfsSettings)
    s3: S3Settings = Field(default_factory=S3Settings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    pacing: PacingSettings = Field(default_factory=PacingSettings)
    safety: SafetySettings = Field(default_factory=SafetySettings)
    classifier: ClassifierRules = Field(default_factory=ClassifierRules)
    preview: PreviewSettings = Field(default_factory=PreviewSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    selector_max_scan: int = Field(
        default=10_000,
        gt=0,
        description="Rows inspected at most when a backend-kind filter pages through the catalog",
    )

    @model_validator(mode="after")
    def validate_s3_credentials_pair(self) -> "ReclaimerSettings":
        """Access key and secret must be given together or not at all."""
        if (self.s3.access_key_id is None) != (self.s3.secret_access_key is None):
            raise ValueError("s3.access_key_id and s3.secret_access_key must be set together")
        return self


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Unset variables without a default are left verbatim so validation
    reports them instead of silently substituting an empty string.
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            env_value = os.environ.get(match.group(1))
            if env_value is not None:
                return env_value
            if match.group(2) is not None:
                return match.group(2)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        if isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [_expand_value(item) for item in value]
        return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lower_keys(value: Any) -> Any:
    """Dynaconf upper-cases keys at every level; Pydantic fields are lowercase."""
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(item) for item in value]
    return value


def load_settings(config_path: Path) -> ReclaimerSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (RECLAIMER_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: RECLAIMER_S3__BUCKET for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="RECLAIMER",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = _lower_keys({k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys})
    raw_config = _expand_env_vars(raw_config)

    return ReclaimerSettings(**raw_config)


def load_policy_file(policy_path: Path) -> RetentionPolicy:
    """Load a RetentionPolicy from a YAML file.

    Raises:
        SettingsError: If the file is missing or is not a YAML mapping
        ValidationError: If the predicate is invalid
    """
    if not policy_path.exists():
        raise SettingsError(f"Policy file not found: {policy_path}")
    try:
        raw = yaml.safe_load(policy_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SettingsError(f"Policy file {policy_path} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise SettingsError(f"Policy file {policy_path} must contain a mapping, got {type(raw).__name__}")
    return RetentionPolicy(**_expand_env_vars(raw))


def resolve_config(settings: ReclaimerSettings) -> dict[str, Any]:
    """Convert validated settings to a dict safe to log.

    Secret fields are masked and passwords embedded in DSNs are removed.
    """

    def _redact(value: Any, key: str | None = None) -> Any:
        if isinstance(value, dict):
            return {k: _redact(v, k) for k, v in value.items()}
        if key in SECRET_FIELD_NAMES and value is not None:
            return "***"
        if isinstance(value, str):
            return mask_dsn(value)
        return value

    redacted: dict[str, Any] = _redact(settings.model_dump(mode="json"))
    return redacted
