"""
Shared-secret keys for service-to-service calls and admin-only operations.

Missing keys fall back to loud insecure defaults instead of failing at import
time, so local development and tests still start.
"""
import os
import secrets
import warnings


def _key_from_env(name: str, default: str) -> str:
    value = os.getenv(name, "")
    if not value:
        warnings.warn(
            f"{name} is not set. Using an insecure default. "
            "Set this env var in production!",
            stacklevel=3,
        )
        value = default
    return value


INTERNAL_API_KEY: str = _key_from_env("INTERNAL_API_KEY", "insecure-default-change-me")
ADMIN_API_KEY: str = _key_from_env("ADMIN_API_KEY", "insecure-admin-default-change-me")


def verify_api_key(provided_key: str, expected_key: str = None) -> bool:
    """Verify an API key using constant-time comparison to prevent timing attacks."""
    if not provided_key:
        return False
    expected = INTERNAL_API_KEY if expected_key is None else expected_key
    return secrets.compare_digest(str(provided_key), str(expected))
