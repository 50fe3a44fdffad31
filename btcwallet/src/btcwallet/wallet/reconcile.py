"""
Transaction detail reconciliation.

Turns a decoded transaction into the wallet's view of it: how much it sent
from and received into the wallet, and its fee when that can be known.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Protocol

from btccore.transaction import OutPoint, Transaction
from loguru import logger

from btcwallet.wallet.keys import DescriptorProvider
from btcwallet.wallet.models import BlockTime, TransactionDetails
from btcwallet.wallet.utxo_set import UtxoSet


class OwnershipLookup(Protocol):
    def owned_value(self, outpoint: OutPoint) -> int | None:
        """Value of ``outpoint`` if it is a wallet-owned output."""
        ...

    def prevout_value(self, outpoint: OutPoint) -> int | None:
        """Value of ``outpoint`` from any other source (e.g. the backend)."""
        ...

    def is_mine(self, script_pubkey: bytes) -> bool: ...


class WalletOwnership:
    """``OwnershipLookup`` over a UTXO set, a key provider and backend prevouts."""

    def __init__(
        self,
        utxos: UtxoSet,
        provider: DescriptorProvider,
        prevouts: Mapping[OutPoint, int] | None = None,
    ):
        self.utxos = utxos
        self.provider = provider
        self.prevouts = prevouts or {}

    def owned_value(self, outpoint: OutPoint) -> int | None:
        utxo = self.utxos.get(outpoint)
        return utxo.value if utxo is not None else None

    def prevout_value(self, outpoint: OutPoint) -> int | None:
        return self.prevouts.get(outpoint)

    def is_mine(self, script_pubkey: bytes) -> bool:
        return self.provider.owns_script(script_pubkey) is not None


def reconcile(
    tx: Transaction,
    lookup: OwnershipLookup,
    confirmation_time: BlockTime | None = None,
) -> TransactionDetails:
    """
    Compute sent/received/fee for one transaction.

    ``fee`` is None unless every input value is known, either because the
    input spends a wallet output or because the backend supplied the prevout.
    Coinbase transactions have no prevouts and report a zero fee.

    Recompute whenever the confirmation status of ``tx`` changes; fee
    availability is not stable across scans.
    """
    txid = tx.txid
    sent = 0
    input_total = 0
    resolved = True

    if not tx.is_coinbase:
        for inp in tx.inputs:
            owned = lookup.owned_value(inp.previous_output)
            if owned is not None:
                sent += owned
                input_total += owned
                continue
            value = lookup.prevout_value(inp.previous_output)
            if value is None:
                resolved = False
            else:
                input_total += value

    received = sum(out.value for out in tx.outputs if lookup.is_mine(out.script_pubkey))
    output_total = tx.output_total()

    fee: int | None
    if tx.is_coinbase:
        fee = 0
    elif not resolved:
        logger.debug(f"Fee unavailable for {txid}: not every input value is known")
        fee = None
    elif input_total < output_total:
        logger.warning(
            f"Inputs of {txid} sum to {input_total} below outputs {output_total}, "
            "dropping fee"
        )
        fee = None
    else:
        fee = input_total - output_total

    return TransactionDetails(
        txid=txid,
        received=received,
        sent=sent,
        fee=fee,
        confirmation_time=confirmation_time,
    )


def find_trusted_txids(
    transactions: Iterable[Transaction],
    lookup: OwnershipLookup,
    confirmed_txids: frozenset[str] | set[str] = frozenset(),
) -> frozenset[str]:
    """
    Unconfirmed transactions whose every input spends a wallet output.

    Their outputs can be treated as trusted pending: nobody but the wallet
    can double-spend them.
    """
    trusted = set()
    for tx in transactions:
        if tx.is_coinbase or not tx.inputs:
            continue
        txid = tx.txid
        if txid in confirmed_txids:
            continue
        if all(lookup.owned_value(inp.previous_output) is not None for inp in tx.inputs):
            trusted.add(txid)
    return frozenset(trusted)
