"""
Address-index persistence.

The per-keychain cursor and used indices are stored as a small JSON document
so restarts never hand out an already-issued address again:

    {"version": 1, "descriptor_id": "...", "keychains": {"external": {...}, "internal": {...}}}

``descriptor_id`` ties the file to the descriptor that produced it; loading a
file written for a different descriptor is refused.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from btccore.bitcoin import sha256
from loguru import logger

from btcwallet.wallet.address_index import AddressIndexController
from btcwallet.wallet.keys import DescriptorProvider
from btcwallet.wallet.models import KeychainKind

STATE_FORMAT_VERSION = 1


class StateFileError(Exception):
    """The address-index state file exists but cannot be used."""


def descriptor_id(provider: DescriptorProvider) -> str:
    """Short stable identifier of a descriptor (hash of its first receive script)."""
    return sha256(provider.derive_script(KeychainKind.EXTERNAL, 0)).hex()[:16]


class AddressIndexStore:
    """
    JSON file holding an ``AddressIndexController``'s state.

    A missing file means a fresh wallet. A file that exists but cannot be
    parsed raises ``StateFileError`` instead of falling back to a fresh
    state, which would silently rewind the cursors.
    """

    def __init__(self, path: Path):
        self.path = path

    def load(self, provider: DescriptorProvider) -> AddressIndexController:
        """
        Load the controller state for ``provider``.

        Raises:
            StateFileError: If the file is unreadable, malformed, or belongs
                to another descriptor
        """
        if not self.path.exists():
            logger.debug(f"No address index state at {self.path}, starting fresh")
            return AddressIndexController(provider)

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StateFileError(f"Cannot read address index state {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StateFileError(f"Address index state {self.path} is not a JSON object")
        if data.get("version") != STATE_FORMAT_VERSION:
            raise StateFileError(
                f"Unsupported address index state version {data.get('version')!r} in {self.path}"
            )

        expected_id = descriptor_id(provider)
        if data.get("descriptor_id") != expected_id:
            raise StateFileError(
                f"Address index state {self.path} belongs to another descriptor "
                f"({data.get('descriptor_id')!r}, expected {expected_id!r})"
            )

        keychains = data.get("keychains", {})
        if not isinstance(keychains, dict):
            raise StateFileError(f"Address index state {self.path} has malformed keychains")

        try:
            controller = AddressIndexController.from_state(provider, keychains)
        except ValueError as e:
            raise StateFileError(f"Invalid address index state in {self.path}: {e}") from e

        logger.debug(
            f"Loaded address index state from {self.path} "
            f"(external cursor {controller.current_index(KeychainKind.EXTERNAL)})"
        )
        return controller

    def save(self, controller: AddressIndexController) -> None:
        """
        Persist ``controller`` state.

        Writes the entire file atomically (write to temp, then rename).

        Raises:
            OSError: If the file cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        document: dict[str, Any] = {
            "version": STATE_FORMAT_VERSION,
            "descriptor_id": descriptor_id(controller.provider),
            "keychains": controller.export_state(),
        }

        tmp_path = self.path.with_suffix(".tmp")
        try:
            text = json.dumps(document, indent=2, sort_keys=True) + "\n"
            tmp_path.write_text(text, encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            logger.error(f"Failed to save address index state: {e}")
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                pass
            raise
