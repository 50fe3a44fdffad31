"""
Common CLI helpers.

Resolution logic shared by command-line entry points: logging setup,
settings loading, and mnemonic resolution. Parameter definitions stay in
the CLI module itself, which keeps typer out of btccore.

Usage:
    from btccore.cli_common import resolve_mnemonic, setup_cli

    settings = setup_cli(log_level)
    resolved = resolve_mnemonic(settings, mnemonic_file=mnemonic_file)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from btccore.settings import BtcWalletSettings, get_settings, reset_settings


@dataclass
class ResolvedMnemonic:
    """Resolved mnemonic and BIP39 passphrase."""

    mnemonic: str
    bip39_passphrase: str
    source: str  # Where the mnemonic came from (for logging)


def setup_logging(level: str = "INFO") -> None:
    """
    Configure loguru logging with consistent format.

    Args:
        level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR)
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level=level.upper(),
        colorize=True,
    )


def setup_cli(log_level: str | None = None, **overrides: object) -> BtcWalletSettings:
    """
    Common CLI setup: reset settings cache, configure logging, return settings.

    Log level priority: CLI argument > settings (env/config) > default "INFO"
    """
    reset_settings()
    settings = get_settings(**overrides)

    effective_log_level = log_level if log_level is not None else settings.logging.level
    setup_logging(effective_log_level)

    return settings


def load_mnemonic_from_file(path: Path) -> str:
    """Read a plaintext mnemonic file, collapsing whitespace."""
    if not path.exists():
        raise ValueError(f"Mnemonic file not found: {path}")
    return " ".join(path.read_text(encoding="utf-8").split())


def resolve_mnemonic(
    settings: BtcWalletSettings,
    *,
    mnemonic: str | None = None,
    mnemonic_file: Path | None = None,
    bip39_passphrase: str | None = None,
) -> ResolvedMnemonic:
    """
    Resolve mnemonic from various sources with priority.

    Mnemonic priority:
    1. --mnemonic argument
    2. --mnemonic-file argument
    3. MNEMONIC_FILE environment variable
    4. MNEMONIC environment variable
    5. Config file wallet.mnemonic_file setting

    BIP39 passphrase priority:
    1. --bip39-passphrase argument
    2. BIP39_PASSPHRASE environment variable
    3. Config file wallet.bip39_passphrase setting
    4. Empty string

    Raises:
        ValueError: If no mnemonic source is available
    """
    if mnemonic:
        resolved, source = mnemonic, "--mnemonic argument"
    elif mnemonic_file:
        resolved = load_mnemonic_from_file(mnemonic_file)
        source = f"--mnemonic-file ({mnemonic_file})"
    elif env_file := os.environ.get("MNEMONIC_FILE"):
        resolved = load_mnemonic_from_file(Path(env_file))
        source = f"MNEMONIC_FILE env ({env_file})"
    elif env_mnemonic := os.environ.get("MNEMONIC"):
        resolved, source = env_mnemonic, "MNEMONIC env"
    elif settings.wallet.mnemonic_file:
        config_path = Path(settings.wallet.mnemonic_file)
        resolved, source = load_mnemonic_from_file(config_path), f"config file ({config_path})"
    else:
        raise ValueError(
            "No mnemonic provided. Use --mnemonic-file, MNEMONIC_FILE/MNEMONIC env, "
            "or wallet.mnemonic_file in config"
        )

    if bip39_passphrase is not None:
        passphrase = bip39_passphrase
    elif env_passphrase := os.environ.get("BIP39_PASSPHRASE"):
        passphrase = env_passphrase
    elif settings.wallet.bip39_passphrase is not None:
        passphrase = settings.wallet.bip39_passphrase.get_secret_value()
    else:
        passphrase = ""

    logger.debug(f"Using mnemonic from {source}")
    return ResolvedMnemonic(mnemonic=resolved, bip39_passphrase=passphrase, source=source)
