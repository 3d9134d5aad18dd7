"""
Pydantic v2 Configuration Models for CloudPost

Provides strict, typed configuration for a posting run:
- Retry policy for transient store failures
- Remote store connection settings (URL, collection, timeouts, TLS)
- Batching, commit-within, worker pool and throttling knobs
- Top-level PostConfig as single source of truth

All models use extra="forbid" for strict validation. Environment variables
and CLI overrides follow: file < env < CLI precedence.
"""

from __future__ import annotations

import hashlib
import json
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = ["RetryPolicy", "StoreConfig", "PostConfig"]

DEFAULT_POOL_TIMEOUT_S = 24 * 60 * 60


class RetryPolicy(BaseModel):
    """Retry budget for transient submission failures; immutable per run."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", frozen=True)

    max_attempts: int = Field(default=3, description="Total attempts (initial + retries)")
    wait_seconds: float = Field(default=10, description="Fixed wait between attempts")

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v

    @field_validator("wait_seconds")
    @classmethod
    def validate_wait(cls, v: float) -> float:
        if v < 0:
            raise ValueError("wait_seconds must be >= 0")
        return v


class StoreConfig(BaseModel):
    """Connection settings for the remote document store."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid")

    url: str = Field(default="http://localhost:8983/solr", description="Base URL of the store")
    collection: Optional[str] = Field(default=None, description="Target collection name")
    timeout_connect_s: float = Field(default=10.0, description="Connection timeout in seconds")
    timeout_read_s: float = Field(default=60.0, description="Read timeout in seconds")
    verify_tls: bool = Field(default=True, description="Verify TLS certificates")
    headers: Dict[str, str] = Field(default_factory=dict, description="Extra request headers")

    @field_validator("timeout_connect_s", "timeout_read_s")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be > 0")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return v.rstrip("/")


class PostConfig(BaseModel):
    """
    Single source of truth for a CloudPost run.

    Loaded from file (YAML/JSON), overlaid with environment variables,
    and finally overridden by CLI arguments. Precedence: file < env < CLI.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="forbid", validate_assignment=True)

    run_id: Optional[str] = Field(default=None, description="Run identifier for traceability")
    batch_size: int = Field(default=5000, ge=1, description="Maximum operations per request")
    commit_within_s: int = Field(default=120, ge=0, description="Commit-within hint in seconds")
    workers: int = Field(default=1, ge=1, description="Number of files posted in parallel")
    delay_s: float = Field(default=0, ge=0, description="Pause after each successful file")
    file_types: List[str] = Field(
        default_factory=lambda: ["xml", "zip", "gz"],
        description="File extensions picked up when walking directories",
    )
    commit: bool = Field(default=True, description="Issue a commit after all files are posted")
    optimize: bool = Field(default=False, description="Issue an optimize after all files")
    pool_timeout_s: float = Field(
        default=DEFAULT_POOL_TIMEOUT_S, gt=0, description="Ceiling for the whole worker pool"
    )
    retry: RetryPolicy = Field(default_factory=RetryPolicy, description="Retry policy")
    store: StoreConfig = Field(default_factory=StoreConfig, description="Remote store settings")

    @field_validator("file_types")
    @classmethod
    def validate_file_types(cls, v: List[str]) -> List[str]:
        normalized = [ext.strip().lstrip(".").lower() for ext in v if ext.strip()]
        if not normalized:
            raise ValueError("file_types must not be empty")
        return normalized

    def config_hash(self) -> str:
        """
        Compute deterministic SHA256 hash of config for reproducibility.

        Returns:
            Hex-encoded SHA256 hash of normalized config JSON.
        """
        normalized = json.dumps(self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(normalized.encode()).hexdigest()
