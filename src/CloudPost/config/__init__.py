"""
CloudPost Configuration Package

Public API for loading, validating, and introspecting run configuration.

Example:
    from CloudPost.config import load_config

    config = load_config(
        path="cloudpost.yaml",
        cli_overrides={"workers": 4, "retry": {"max_attempts": 5}},
    )
    config_id = config.config_hash()
"""

from .loader import (
    export_config_schema,
    load_config,
    validate_config_file,
)
from .models import (
    PostConfig,
    RetryPolicy,
    StoreConfig,
)

__all__ = [
    # Models
    "PostConfig",
    "RetryPolicy",
    "StoreConfig",
    # Loading/validation
    "load_config",
    "validate_config_file",
    "export_config_schema",
]
