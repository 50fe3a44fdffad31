"""
Protocol constants.
"""

from __future__ import annotations

SATS_PER_BTC = 100_000_000

# Blocks a coinbase output must be buried under before it can be spent
COINBASE_MATURITY = 100

# Non-witness bytes weigh 4 units, witness bytes 1 unit
WITNESS_SCALE_FACTOR = 4

# Default number of consecutive unused addresses scanned past the last used one
DEFAULT_STOP_GAP = 20

# Highest non-hardened BIP32 child index + 1
HARDENED_OFFSET = 0x80000000

MAX_SEQUENCE = 0xFFFFFFFF
