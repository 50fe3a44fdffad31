"""
btc-wallet command-line interface.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from btccore.bitcoin import AddressDecodeError, format_amount, scriptpubkey_to_address
from btccore.cli_common import resolve_mnemonic, setup_cli
from btccore.models import NetworkType
from btccore.paths import get_wallet_state_path
from btccore.settings import DEFAULT_ESPLORA_URLS, BtcWalletSettings, ensure_config_file
from btccore.transaction import CodecError, Transaction
from btccore.version import __version__
from loguru import logger

from btcwallet.backends.base import BackendError
from btcwallet.backends.esplora import EsploraBackend
from btcwallet.wallet.address_index import AddressIndex, LastUnused, New, Peek, Reset
from btcwallet.wallet.keys import Bip84KeyProvider, DerivationError
from btcwallet.wallet.models import KeychainKind
from btcwallet.wallet.service import WalletService
from btcwallet.wallet.store import AddressIndexStore, StateFileError, descriptor_id

app = typer.Typer(
    name="btc-wallet",
    help="Bitcoin wallet state tracking",
    add_completion=False,
)


class Strategy(str, Enum):
    NEW = "new"
    LAST_UNUSED = "last-unused"
    PEEK = "peek"
    RESET = "reset"


MnemonicFileOption = Annotated[
    Path | None, typer.Option("--mnemonic-file", "-f", help="Plaintext BIP39 mnemonic file")
]
PassphraseOption = Annotated[
    str | None,
    typer.Option("--bip39-passphrase", envvar="BIP39_PASSPHRASE", help="BIP39 passphrase"),
]
NetworkOption = Annotated[
    NetworkType | None, typer.Option("--network", "-n", help="Bitcoin network")
]
LogLevelOption = Annotated[str | None, typer.Option("--log-level", "-l", help="Log level")]
EsploraUrlOption = Annotated[
    str | None, typer.Option("--esplora-url", envvar="ESPLORA_URL", help="Esplora API base URL")
]


def main() -> None:
    """Entry point for the ``btc-wallet`` console script."""
    app()


def _print_version(value: bool) -> None:
    if value:
        print(f"btc-wallet {__version__}")
        raise typer.Exit()


@app.callback()
def root(
    version: Annotated[
        bool,
        typer.Option(
            "--version", callback=_print_version, is_eager=True, help="Show version and exit"
        ),
    ] = False,
) -> None:
    """Bitcoin wallet state tracking."""


def _resolve_network(settings: BtcWalletSettings, network: NetworkType | None) -> NetworkType:
    return network if network is not None else settings.network_config.network


def _load_provider(
    settings: BtcWalletSettings,
    network: NetworkType,
    mnemonic_file: Path | None,
    bip39_passphrase: str | None,
) -> Bip84KeyProvider:
    try:
        resolved = resolve_mnemonic(
            settings, mnemonic_file=mnemonic_file, bip39_passphrase=bip39_passphrase
        )
        return Bip84KeyProvider.from_mnemonic(
            resolved.mnemonic,
            network=network,
            account=settings.wallet.account,
            passphrase=resolved.bip39_passphrase,
        )
    except ValueError as e:
        logger.error(str(e))
        raise typer.Exit(1)


def _open_store(settings: BtcWalletSettings, provider: Bip84KeyProvider) -> AddressIndexStore:
    path = get_wallet_state_path(descriptor_id(provider), settings.get_data_dir())
    return AddressIndexStore(path)


def _build_wallet(
    settings: BtcWalletSettings,
    provider: Bip84KeyProvider,
    esplora_url: str | None,
) -> WalletService:
    url = esplora_url or settings.esplora.url or DEFAULT_ESPLORA_URLS[provider.network.value]
    backend = EsploraBackend(url, timeout=settings.esplora.timeout)
    try:
        return WalletService(
            provider,
            backend,
            stop_gap=settings.wallet.stop_gap,
            coinbase_maturity=settings.wallet.coinbase_maturity,
            store=_open_store(settings, provider),
        )
    except StateFileError as e:
        logger.error(str(e))
        raise typer.Exit(1)


async def _synced(wallet: WalletService) -> None:
    try:
        await wallet.sync()
    except BackendError as e:
        logger.error(f"Sync failed: {e}")
        raise typer.Exit(1)
    finally:
        await wallet.close()


@app.command("decode-tx")
def decode_tx(
    tx_hex: Annotated[str, typer.Argument(help="Raw transaction hex")],
    network: NetworkOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Decode a raw transaction and show its sizes and outputs."""
    settings = setup_cli(log_level)
    net = _resolve_network(settings, network)

    try:
        tx = Transaction.from_hex(tx_hex.strip())
    except CodecError as e:
        logger.error(f"Invalid transaction: {e}")
        raise typer.Exit(1)

    print(f"txid:      {tx.txid}")
    print(f"wtxid:     {tx.wtxid}")
    print(f"version:   {tx.version}")
    print(f"locktime:  {tx.locktime}")
    print(f"size:      {tx.size()}")
    print(f"vsize:     {tx.vsize()}")
    print(f"weight:    {tx.weight()}")
    print(f"inputs ({len(tx.inputs)}):")
    for inp in tx.inputs:
        print(f"  {inp.previous_output}  witness items: {len(inp.witness)}")
    print(f"outputs ({len(tx.outputs)}):")
    for vout, out in enumerate(tx.outputs):
        try:
            destination = scriptpubkey_to_address(out.script_pubkey, net)
        except AddressDecodeError:
            destination = f"script {out.script_pubkey.hex()}"
        print(f"  #{vout} {out.value:>16,} sats  {destination}")


@app.command()
def address(
    strategy: Annotated[
        Strategy, typer.Option("--strategy", "-s", help="Address index strategy")
    ] = Strategy.NEW,
    index: Annotated[
        int | None, typer.Option("--index", "-i", help="Index for peek/reset", min=0)
    ] = None,
    change: Annotated[
        bool, typer.Option("--change", help="Use the internal (change) keychain")
    ] = False,
    mnemonic_file: MnemonicFileOption = None,
    bip39_passphrase: PassphraseOption = None,
    network: NetworkOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Get a receive (or change) address."""
    settings = setup_cli(log_level)
    net = _resolve_network(settings, network)

    chosen: AddressIndex
    if strategy in (Strategy.PEEK, Strategy.RESET):
        if index is None:
            logger.error(f"--index is required for {strategy.value}")
            raise typer.Exit(1)
        chosen = Peek(index) if strategy == Strategy.PEEK else Reset(index)
    else:
        chosen = New() if strategy == Strategy.NEW else LastUnused()

    provider = _load_provider(settings, net, mnemonic_file, bip39_passphrase)
    store = _open_store(settings, provider)
    keychain = KeychainKind.INTERNAL if change else KeychainKind.EXTERNAL

    try:
        controller = store.load(provider)
        info = controller.next_address(chosen, keychain)
        if not isinstance(chosen, Peek):
            store.save(controller)
    except (StateFileError, DerivationError) as e:
        logger.error(str(e))
        raise typer.Exit(1)

    print(f"{info.address}  ({provider.get_path(keychain, info.index)})")


@app.command()
def balance(
    mnemonic_file: MnemonicFileOption = None,
    bip39_passphrase: PassphraseOption = None,
    network: NetworkOption = None,
    esplora_url: EsploraUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Sync with Esplora and show the wallet balance."""
    settings = setup_cli(log_level)
    net = _resolve_network(settings, network)
    provider = _load_provider(settings, net, mnemonic_file, bip39_passphrase)
    wallet = _build_wallet(settings, provider, esplora_url)

    asyncio.run(_synced(wallet))
    bal = wallet.get_balance()

    print(f"\nBalance at height {wallet.tip_height}:")
    print(f"  Confirmed:          {format_amount(bal.confirmed)}")
    print(f"  Trusted pending:    {format_amount(bal.trusted_pending)}")
    print(f"  Untrusted pending:  {format_amount(bal.untrusted_pending)}")
    print(f"  Immature:           {format_amount(bal.immature)}")
    print(f"  Spendable:          {format_amount(bal.spendable)}")
    print(f"  Total:              {format_amount(bal.total)}")


@app.command()
def history(
    limit: Annotated[int | None, typer.Option("--limit", help="Max entries to show")] = None,
    mnemonic_file: MnemonicFileOption = None,
    bip39_passphrase: PassphraseOption = None,
    network: NetworkOption = None,
    esplora_url: EsploraUrlOption = None,
    log_level: LogLevelOption = None,
) -> None:
    """Sync with Esplora and list wallet transactions."""
    settings = setup_cli(log_level)
    net = _resolve_network(settings, network)
    provider = _load_provider(settings, net, mnemonic_file, bip39_passphrase)
    wallet = _build_wallet(settings, provider, esplora_url)

    asyncio.run(_synced(wallet))
    entries = wallet.list_transactions()
    if limit is not None:
        entries = entries[:limit]

    if not entries:
        print("\nNo transactions found.")
        return

    print(f"\nTransaction History ({len(entries)} entries):")
    print("=" * 120)
    print(f"{'Date':<20} {'Height':>8} {'Net':>14} {'Fee':>10}  {'TXID':<64}")
    print("-" * 120)
    for details in entries:
        if details.confirmation_time is None:
            date_str, height_str = "pending", "-"
        else:
            timestamp = details.confirmation_time.timestamp
            date_str = datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")
            height_str = str(details.confirmation_time.height)
        fee_str = f"{details.fee:,}" if details.fee is not None else "?"
        print(
            f"{date_str:<20} {height_str:>8} {details.net:>+14,} {fee_str:>10}  {details.txid:<64}"
        )
    print("=" * 120)


@app.command("config-init")
def config_init(
    data_dir: Annotated[
        Path | None,
        typer.Option(
            "--data-dir",
            help="Data directory (default: ~/.btcwallet-ng or $BTCWALLET_DATA_DIR)",
        ),
    ] = None,
) -> None:
    """Create a commented config.toml template if none exists."""
    config_path = ensure_config_file(data_dir)
    print(f"Config file: {config_path}")


if __name__ == "__main__":
    main()
