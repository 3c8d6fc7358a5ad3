"""Configuration utility for the tracker webhook service.

Every setting comes from the process environment (a `.env` file is loaded by the
migrations CLI). Values are coerced to bool or number unless read with
`get_config_value_str`.
"""

import os
from typing import Any


def parse_config_value(value: str) -> str | bool | int | None:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)  # type: ignore[return-value]
            except ValueError:
                # Return as string
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "SUPABASE_DB_URL")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str) -> str | None:
    """Raw environment value, without the bool and number coercion of `get_config_value`."""
    return os.environ.get(key)


def require_config_value(key: str) -> str:
    value = os.environ.get(key)
    if not value:
        raise ValueError(f"Environment variable {key} is required")
    return value


def get_tracker_environment() -> str:
    """Get the deployment environment from env var."""
    return get_config_value("TRACKER_ENVIRONMENT", "local")


def get_supabase_db_url() -> str:
    """Get the tracker database connection URL (without the password).

    Raises:
        ValueError: If SUPABASE_DB_URL is not configured
    """
    return require_config_value("SUPABASE_DB_URL")


def get_supabase_db_password() -> str:
    """Get the privileged database password used by the webhook service.

    Kept separate from the URL so it can be injected from a secret store.

    Raises:
        ValueError: If SUPABASE_DB_PASSWORD is not configured
    """
    return require_config_value("SUPABASE_DB_PASSWORD")


def get_store_pool_min_size() -> int:
    return int(get_config_value("STORE_POOL_MIN_SIZE", 1))


def get_store_pool_max_size() -> int:
    return int(get_config_value("STORE_POOL_MAX_SIZE", 5))


def get_store_command_timeout() -> float:
    """Per-statement timeout in seconds for store queries."""
    return float(get_config_value("STORE_COMMAND_TIMEOUT_SECONDS", 10))


def get_issue_reference_tag() -> str:
    """Get the literal marker that precedes an issue display id in commit messages.

    Empty by default, so "Fixes PROJ-12" references PROJ-12. Set to "BUG-" to only
    match references written as "BUG-PROJ-12".
    """
    # Read as a raw string; a tag like "123" must not be coerced to an int
    return get_config_value_str("ISSUE_REFERENCE_TAG") or ""


def get_gatekeeper_port() -> int:
    return int(get_config_value("GATEKEEPER_PORT", 8001))
