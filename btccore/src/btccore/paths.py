"""
Shared path utilities for wallet data directories.

Keeps the config file and per-wallet state files in one place so the CLI,
the settings loader and the wallet service agree on locations.
"""

from __future__ import annotations

import os
from pathlib import Path

DATA_DIR_ENV = "BTCWALLET_DATA_DIR"


def get_default_data_dir() -> Path:
    """
    Get the default data directory.

    Returns ~/.btcwallet-ng or $BTCWALLET_DATA_DIR if set.
    Creates the directory if it doesn't exist.
    """
    env_path = os.getenv(DATA_DIR_ENV)
    data_dir = Path(env_path) if env_path else Path.home() / ".btcwallet-ng"

    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_wallet_state_path(wallet_name: str, data_dir: Path | None = None) -> Path:
    """
    Get the path of the address-index state file for a wallet.

    Args:
        wallet_name: Wallet identifier (used as the file stem)
        data_dir: Optional data directory (defaults to get_default_data_dir())

    Returns:
        Path to wallets/<wallet_name>.index.json
    """
    if data_dir is None:
        data_dir = get_default_data_dir()

    wallets_dir = data_dir / "wallets"
    wallets_dir.mkdir(parents=True, exist_ok=True)

    return wallets_dir / f"{wallet_name}.index.json"
