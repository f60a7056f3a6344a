"""
Default configuration for the command-line explorer.

Values here are used when neither the YAML config file nor the environment
overrides them. They are read once at startup.
"""

# Node provider configuration
DEFAULT_RPC_ENDPOINT: str = "https://api.mainnet-beta.solana.com"
RPC_ENDPOINT_ENV_VAR: str = "SOLANA_RPC_URL"
COMMITMENT: str = "confirmed"  # processed / confirmed / finalized

# Network aliases accepted wherever an endpoint is expected
NETWORK_ALIASES: dict[str, str] = {
    "devnet": "https://api.devnet.solana.com",
    "dev": "https://api.devnet.solana.com",
    "d": "https://api.devnet.solana.com",
    "testnet": "https://api.testnet.solana.com",
    "test": "https://api.testnet.solana.com",
    "t": "https://api.testnet.solana.com",
    "mainnet": "https://api.mainnet-beta.solana.com",
    "mainnet-beta": "https://api.mainnet-beta.solana.com",
    "main": "https://api.mainnet-beta.solana.com",
    "m": "https://api.mainnet-beta.solana.com",
    "localnet": "http://localhost:8899",
    "localhost": "http://localhost:8899",
    "local": "http://localhost:8899",
    "l": "http://localhost:8899",
}

# Retry settings for idempotent read calls
MAX_RETRIES: int = 4  # Attempts after the first one
RETRY_BASE_DELAY: float = 0.25  # Seconds, doubled on every attempt
RETRY_MAX_DELAY: float = 4.0  # Upper bound for a single backoff sleep
BLOCK_FETCH_ATTEMPTS: int = 5  # getBlock is retried per slot on top of the above

# Per-call timeout in seconds; batches have no overall timeout
REQUEST_TIMEOUT: float = 10.0

# Concurrent RPC calls allowed inside one batched fetch
MAX_WORKERS: int = 8


def validate_configuration() -> None:
    """Validate the default values above."""
    config_checks = [
        # (value, type, min_value, max_value, error_message)
        (MAX_RETRIES, int, 0, 20, "MAX_RETRIES must be between 0 and 20"),
        (RETRY_BASE_DELAY, (int, float), 0, 60, "RETRY_BASE_DELAY must be between 0 and 60"),
        (RETRY_MAX_DELAY, (int, float), 0, 300, "RETRY_MAX_DELAY must be between 0 and 300"),
        (BLOCK_FETCH_ATTEMPTS, int, 1, 20, "BLOCK_FETCH_ATTEMPTS must be between 1 and 20"),
        (REQUEST_TIMEOUT, (int, float), 0.1, 300, "REQUEST_TIMEOUT must be between 0.1 and 300"),
        (MAX_WORKERS, int, 1, 256, "MAX_WORKERS must be between 1 and 256"),
    ]

    for value, expected_type, min_val, max_val, error_msg in config_checks:
        if not isinstance(value, expected_type):
            raise ValueError(f"Type error: {error_msg}")

        if not (min_val <= value <= max_val):
            raise ValueError(f"Range error: {error_msg}")

    if COMMITMENT not in ("processed", "confirmed", "finalized"):
        raise ValueError("COMMITMENT must be one of processed, confirmed, finalized")


# Validate configuration on import
validate_configuration()
