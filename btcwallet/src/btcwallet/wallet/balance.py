"""
Balance aggregation.

The balance is always recomputed from a UTXO snapshot in a single pass,
never patched incrementally.
"""

from __future__ import annotations

from collections.abc import Iterable

from btccore.constants import COINBASE_MATURITY
from loguru import logger

from btcwallet.wallet.models import Balance, KeychainKind, LocalUtxo


def compute_balance(
    utxos: Iterable[LocalUtxo],
    tip_height: int | None,
    trusted_txids: frozenset[str] | set[str] = frozenset(),
    coinbase_maturity: int = COINBASE_MATURITY,
) -> Balance:
    """
    Classify every unspent output into one balance bucket.

    - confirmed coinbase with fewer than ``coinbase_maturity`` confirmations
      -> immature
    - any other confirmed output -> confirmed
    - unconfirmed change, or an output of a transaction in ``trusted_txids``
      -> trusted_pending
    - everything else unconfirmed -> untrusted_pending

    Args:
        utxos: UTXO snapshot (spent entries are skipped)
        tip_height: Current chain tip, or None if the wallet never synced
        trusted_txids: Unconfirmed transactions funded entirely by the wallet
        coinbase_maturity: Confirmations required to spend a coinbase output

    Returns:
        Balance with all four buckets filled
    """
    immature = trusted_pending = untrusted_pending = confirmed = 0

    for utxo in utxos:
        if utxo.is_spent:
            continue

        height = utxo.confirmation_height
        if height is not None:
            if tip_height is None:
                depth = 1
            elif height > tip_height:
                logger.warning(
                    f"UTXO {utxo.outpoint} confirmed at {height} above tip {tip_height}, "
                    "treating as unconfirmed depth"
                )
                depth = 0
            else:
                depth = tip_height - height + 1

            if utxo.is_coinbase and depth < coinbase_maturity:
                immature += utxo.value
            else:
                confirmed += utxo.value
        elif utxo.keychain == KeychainKind.INTERNAL or utxo.outpoint.txid in trusted_txids:
            trusted_pending += utxo.value
        else:
            untrusted_pending += utxo.value

    return Balance(
        immature=immature,
        trusted_pending=trusted_pending,
        untrusted_pending=untrusted_pending,
        confirmed=confirmed,
    )
