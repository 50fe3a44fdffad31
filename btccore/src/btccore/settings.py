"""
Unified settings management for the wallet packages.

This module provides a centralized configuration system using pydantic-settings
that supports:
1. TOML configuration file (~/.btcwallet-ng/config.toml)
2. Environment variables
3. CLI arguments (via typer, handled by the CLI)

Priority (highest to lowest):
1. CLI arguments
2. Environment variables
3. Config file
4. Default values

Usage:
    from btccore.settings import get_settings

    settings = get_settings()
    print(settings.network_config.network)
    print(settings.wallet.stop_gap)

Environment Variable Naming:
    - Use uppercase with double underscore for nested settings
    - Examples: WALLET__STOP_GAP, ESPLORA__URL, LOGGING__LEVEL
    - Maps to TOML sections: WALLET__STOP_GAP -> [wallet] stop_gap
"""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from btccore.constants import COINBASE_MATURITY, DEFAULT_STOP_GAP
from btccore.models import NetworkType
from btccore.paths import DATA_DIR_ENV, get_default_data_dir

CONFIG_FILE_ENV = "BTCWALLET_CONFIG_FILE"

# Default Esplora endpoints per network
DEFAULT_ESPLORA_URLS: dict[str, str] = {
    "mainnet": "https://blockstream.info/api",
    "testnet": "https://blockstream.info/testnet/api",
    "signet": "https://mempool.space/signet/api",
    "regtest": "http://127.0.0.1:3002",
}


class NetworkSettings(BaseModel):
    """Network configuration."""

    network: NetworkType = Field(
        default=NetworkType.MAINNET,
        description="Bitcoin network (mainnet, testnet, signet, regtest)",
    )


class WalletSettings(BaseModel):
    """Wallet configuration."""

    stop_gap: int = Field(
        default=DEFAULT_STOP_GAP,
        ge=1,
        description="Consecutive unused addresses scanned past the last used one",
    )
    coinbase_maturity: int = Field(
        default=COINBASE_MATURITY,
        ge=1,
        description="Confirmations before a coinbase output counts as confirmed balance",
    )
    account: int = Field(
        default=0,
        ge=0,
        description="BIP84 account number (m/84'/coin'/account')",
    )
    mnemonic_file: str | None = Field(
        default=None,
        description="Default path to mnemonic file",
    )
    bip39_passphrase: SecretStr | None = Field(
        default=None,
        description="BIP39 passphrase. For security, prefer the BIP39_PASSPHRASE env var.",
    )


class EsploraSettings(BaseModel):
    """Esplora HTTP backend configuration."""

    url: str | None = Field(
        default=None,
        description="Esplora API base URL (defaults to a public instance for the network)",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP request timeout in seconds",
    )


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        description="Log level: TRACE, DEBUG, INFO, WARNING, ERROR",
    )


class BtcWalletSettings(BaseSettings):
    """
    Main settings class.

    Loads configuration from multiple sources with the following priority:
    1. CLI arguments (passed as constructor overrides)
    2. Environment variables
    3. TOML config file (~/.btcwallet-ng/config.toml)
    4. Default values
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",  # Ignore unknown fields (for forward compatibility)
    )

    data_dir: Path | None = Field(
        default=None,
        description="Data directory (defaults to ~/.btcwallet-ng)",
    )

    network_config: NetworkSettings = Field(default_factory=NetworkSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    esplora: EsploraSettings = Field(default_factory=EsploraSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Customize settings sources and their priority.

        Priority (highest to lowest):
        1. init_settings (CLI arguments passed to constructor)
        2. env_settings (environment variables with __ delimiter)
        3. toml_settings (config.toml file)
        """
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls),
        )

    def get_data_dir(self) -> Path:
        """Get the data directory, using default if not set."""
        if self.data_dir is not None:
            return self.data_dir
        return get_default_data_dir()

    def get_esplora_url(self) -> str:
        """Get the Esplora URL, using the network default if not set."""
        if self.esplora.url:
            return self.esplora.url
        return DEFAULT_ESPLORA_URLS[self.network_config.network.value]


class TomlConfigSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source that reads from a TOML config file.

    The config file is expected at ~/.btcwallet-ng/config.toml,
    $BTCWALLET_DATA_DIR/config.toml, or $BTCWALLET_CONFIG_FILE.
    """

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._config: dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from TOML file."""
        config_path = get_config_path()

        if not config_path.exists():
            logger.debug(f"Config file not found at {config_path}, using defaults")
            return

        try:
            with open(config_path, "rb") as f:
                self._config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Invalid TOML syntax in config file {config_path}: {e}")
            logger.error("Tip: Make sure section headers like [wallet] are uncommented")
            raise

        logger.info(f"Loaded config from {config_path}")

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get field value from TOML config."""
        value = self._config.get(field_name)
        return value, field_name, value is not None

    def __call__(self) -> dict[str, Any]:
        """Return all config values as a dict for pydantic-settings."""
        return self._config


def get_config_path() -> Path:
    """Get the path to the config file."""
    env_path = os.environ.get(CONFIG_FILE_ENV)
    if env_path:
        return Path(env_path)

    data_dir_env = os.environ.get(DATA_DIR_ENV)
    data_dir = Path(data_dir_env) if data_dir_env else Path.home() / ".btcwallet-ng"
    return data_dir / "config.toml"


def generate_config_template() -> str:
    """
    Generate a config file template with all settings commented out.

    Users see every available setting with its default and description,
    and uncomment only what they want to change.
    """
    lines: list[str] = [
        "# btcwallet-ng Configuration",
        "#",
        "# Settings are commented out by default - uncomment to override.",
        "#",
        "# Priority (highest to lowest):",
        "#   1. CLI arguments",
        "#   2. Environment variables",
        "#   3. This config file",
        "#   4. Built-in defaults",
        "#",
        "# Environment variables use uppercase with double underscore for nesting:",
        "#   WALLET__STOP_GAP=50",
        "#   ESPLORA__URL=http://localhost:3002",
        "",
    ]

    def add_section(title: str, model_cls: type[BaseModel], prefix: str) -> None:
        lines.append(f"# {'=' * 60}")
        lines.append(f"# {title}")
        lines.append(f"# {'=' * 60}")
        lines.append(f"[{prefix}]")
        lines.append("")

        for field_name, field_info in model_cls.model_fields.items():
            if field_info.description:
                lines.append(f"# {field_info.description}")

            default = field_info.default
            if isinstance(default, Enum):
                value_str = f'"{default.value}"'
            elif isinstance(default, bool):
                value_str = str(default).lower()
            elif isinstance(default, str):
                value_str = f'"{default}"'
            elif isinstance(default, SecretStr):
                value_str = '""'
            elif default is None:
                lines.append(f"# {field_name} = ")
                lines.append("")
                continue
            else:
                value_str = str(default)

            lines.append(f"# {field_name} = {value_str}")
            lines.append("")

    lines.append("# Data directory for wallet files")
    lines.append("# Defaults to ~/.btcwallet-ng or $BTCWALLET_DATA_DIR")
    lines.append("# data_dir = ")
    lines.append("")

    add_section("Network Settings", NetworkSettings, "network_config")
    add_section("Wallet Settings", WalletSettings, "wallet")
    add_section("Esplora Backend Settings", EsploraSettings, "esplora")
    add_section("Logging Settings", LoggingSettings, "logging")

    return "\n".join(lines)


def ensure_config_file(data_dir: Path | None = None) -> Path:
    """
    Ensure the config file exists, creating a template if it doesn't.

    Args:
        data_dir: Optional data directory path. Uses default if not provided.

    Returns:
        Path to the config file.
    """
    if data_dir is None:
        data_dir = get_default_data_dir()

    config_path = data_dir / "config.toml"

    if not config_path.exists():
        logger.info(f"Creating config file template at {config_path}")
        data_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(generate_config_template())

    return config_path


# Global settings instance (lazy-loaded)
_settings: BtcWalletSettings | None = None


def get_settings(**overrides: Any) -> BtcWalletSettings:
    """
    Get the settings instance.

    On first call, loads settings from all sources. Subsequent calls
    return the cached instance unless reset_settings() is called.

    Args:
        **overrides: Optional settings overrides (highest priority)
    """
    global _settings
    if _settings is None or overrides:
        _settings = BtcWalletSettings(**overrides)
    return _settings


def reset_settings() -> None:
    """Reset the global settings instance (useful for testing)."""
    global _settings
    _settings = None


__all__ = [
    "BtcWalletSettings",
    "NetworkSettings",
    "WalletSettings",
    "EsploraSettings",
    "LoggingSettings",
    "get_settings",
    "reset_settings",
    "get_config_path",
    "generate_config_template",
    "ensure_config_file",
    "DEFAULT_ESPLORA_URLS",
]
