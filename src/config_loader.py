"""
Explorer configuration loading and validation.

Configuration is read once at startup from, in order of precedence: explicit
overrides (command-line flags), an optional YAML file, the environment (a .env
file is honoured) and finally the defaults in config.py.
"""

import copy
import os
from typing import Any

import yaml
from dotenv import load_dotenv
from solana.rpc.commitment import Confirmed, Finalized, Processed

import config as defaults

DEFAULT_CONFIG: dict[str, Any] = {
    "rpc_endpoint": None,
    "commitment": defaults.COMMITMENT,
    "retries": {
        "max_attempts": defaults.MAX_RETRIES,
        "base_delay": defaults.RETRY_BASE_DELAY,
        "max_delay": defaults.RETRY_MAX_DELAY,
        "block_attempts": defaults.BLOCK_FETCH_ATTEMPTS,
    },
    "timeouts": {
        "request": defaults.REQUEST_TIMEOUT,
    },
    "concurrency": {
        "max_workers": defaults.MAX_WORKERS,
    },
    "log_file": None,
}

CONFIG_VALIDATION_RULES = [
    ("retries.max_attempts", int, 0, 20, "retries.max_attempts must be between 0 and 20"),
    ("retries.base_delay", (int, float), 0, 60, "retries.base_delay must be between 0 and 60"),
    ("retries.max_delay", (int, float), 0, 300, "retries.max_delay must be between 0 and 300"),
    ("retries.block_attempts", int, 1, 20, "retries.block_attempts must be between 1 and 20"),
    ("timeouts.request", (int, float), 0.1, 300, "timeouts.request must be between 0.1 and 300"),
    ("concurrency.max_workers", int, 1, 256, "concurrency.max_workers must be between 1 and 256"),
]

# Valid values for enum-like fields
VALID_VALUES = {
    "commitment": [Processed, Confirmed, Finalized],
}


def get_network(network: str) -> str:
    """Expand a network alias (main, dev, test, local...) to its endpoint URL."""
    return defaults.NETWORK_ALIASES.get(network.strip().lower(), network.strip())


def load_explorer_config(
    path: str | None = None, overrides: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Load, merge and validate the explorer configuration.

    Args:
        path: Optional YAML config file
        overrides: Values taking precedence over everything else, using the
            same (nested) keys as the YAML file; None values are ignored

    Returns:
        Validated configuration dictionary

    Raises:
        ValueError: If the configuration is invalid
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    file_config: dict[str, Any] = {}
    if path:
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

    env_file = file_config.pop("env_file", None)
    if env_file:
        env_path = os.path.join(os.path.dirname(path), env_file)
        if os.path.exists(env_path):
            load_dotenv(env_path, override=True)
        else:
            load_dotenv(env_file, override=True)
    else:
        load_dotenv()

    resolve_env_vars(file_config)
    merge_config(config, file_config)
    if overrides:
        merge_config(config, overrides)

    if not config["rpc_endpoint"]:
        config["rpc_endpoint"] = os.getenv(
            defaults.RPC_ENDPOINT_ENV_VAR, defaults.DEFAULT_RPC_ENDPOINT
        )
    config["rpc_endpoint"] = get_network(config["rpc_endpoint"])

    validate_config(config)
    return config


def merge_config(base: dict[str, Any], update: dict[str, Any]) -> None:
    """Recursively merge `update` into `base`, skipping None values."""
    for key, value in update.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merge_config(base[key], value)
        else:
            base[key] = value


def resolve_env_vars(config: dict) -> None:
    """Recursively resolve ${ENV_VAR} placeholders in the configuration."""
    def resolve_env(value):
        if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_var = value[2:-1]
            env_value = os.getenv(env_var)
            if env_value is None:
                raise ValueError(f"Environment variable '{env_var}' not found")
            return env_value
        return value

    def resolve_all(d):
        for k, v in d.items():
            if isinstance(v, dict):
                resolve_all(v)
            else:
                d[k] = resolve_env(v)

    resolve_all(config)


def get_nested_value(config: dict, path: str) -> Any:
    """Get a nested value from the configuration using dot notation."""
    keys = path.split(".")
    value = config
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            raise ValueError(f"Missing required config key: {path}")
        value = value[key]
    return value


def validate_config(config: dict) -> None:
    """Validate the merged configuration against the rules above."""
    endpoint = config["rpc_endpoint"]
    if not isinstance(endpoint, str) or not endpoint.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid RPC endpoint '{endpoint}'. Must start with http:// or https://"
        )

    for path, expected_type, min_val, max_val, error_msg in CONFIG_VALIDATION_RULES:
        value = get_nested_value(config, path)

        # bool is an int subclass but never a valid count or delay
        if isinstance(value, bool) or not isinstance(value, expected_type):
            raise ValueError(f"Type error: {error_msg}")

        if not (min_val <= value <= max_val):
            raise ValueError(f"Range error: {error_msg}")

    for path, valid_values in VALID_VALUES.items():
        value = get_nested_value(config, path)
        if value not in valid_values:
            raise ValueError(f"{path} must be one of {valid_values}")
