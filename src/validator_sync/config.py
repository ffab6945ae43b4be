"""
Global configuration for the validator sync engine.

This module contains environment-specific settings that apply across all packages.
"""

import os

_SUPPORTED_SYNC_ENVS: list[str] = ["prod", "test"]

SYNC_ENV = os.environ.get("SYNC_ENV", "prod").lower()
"""The environment flag ('prod' or 'test'). Defaults to 'prod'."""

if SYNC_ENV not in _SUPPORTED_SYNC_ENVS:
    raise ValueError(
        f"Invalid SYNC_ENV environment variable: '{SYNC_ENV}'. "
        f"Supported values: {_SUPPORTED_SYNC_ENVS}"
    )
