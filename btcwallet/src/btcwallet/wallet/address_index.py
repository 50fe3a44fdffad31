"""
Receive-address index controller.

Each keychain has one cursor: the last index handed out, or None before the
first address is issued. The four strategies are distinct types, not flags,
because they carry different address-reuse guarantees:

- ``New``: advance the cursor and return the new index. Never reuses.
- ``LastUnused``: return the cursor's address unless a scan has seen it used,
  otherwise behave like ``New``.
- ``Peek(index)``: derive at ``index`` without touching the cursor.
- ``Reset(index)``: move the cursor to ``index`` (possibly backwards) and
  return that address.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from btcwallet.wallet.keys import DescriptorProvider
from btcwallet.wallet.models import AddressInfo, KeychainKind


@dataclass(frozen=True)
class New:
    pass


@dataclass(frozen=True)
class LastUnused:
    pass


@dataclass(frozen=True)
class Peek:
    index: int


@dataclass(frozen=True)
class Reset:
    index: int


AddressIndex = New | LastUnused | Peek | Reset


@dataclass
class _KeychainState:
    cursor: int | None = None
    used: set[int] = field(default_factory=set)


class AddressIndexController:
    """
    Hands out addresses per keychain under one of the ``AddressIndex`` strategies.

    Mutating strategies are serialized per keychain, so two concurrent ``New``
    calls never return the same index. ``Peek`` is lock-free.

    The cursor only moves after derivation succeeded: a ``DerivationError``
    leaves the state exactly as it was.
    """

    def __init__(self, provider: DescriptorProvider):
        self.provider = provider
        self._states = {kind: _KeychainState() for kind in KeychainKind}
        self._locks = {kind: threading.RLock() for kind in KeychainKind}

    def next_address(
        self, strategy: AddressIndex, keychain: KeychainKind = KeychainKind.EXTERNAL
    ) -> AddressInfo:
        """
        Return an address according to ``strategy``.

        ``LastUnused`` is only as good as the last scan: the used set comes
        from what the backend found within its stop_gap window. If funds
        arrived at the cursor's address after that scan, or beyond the scanned
        range, the address is still reported unused and will be handed out
        again. Sync before relying on it.

        ``Reset`` to an index below previously issued ones makes the following
        ``New`` calls return addresses that were already given out. Avoiding
        that reuse is the caller's responsibility.

        Raises:
            DerivationError: If the descriptor cannot produce the address
            TypeError: If ``strategy`` is not an ``AddressIndex`` variant
        """
        if isinstance(strategy, Peek):
            return self._derive(keychain, strategy.index)

        if not isinstance(strategy, New | LastUnused | Reset):
            raise TypeError(f"Unknown address index strategy: {strategy!r}")

        with self._locks[keychain]:
            state = self._states[keychain]

            if isinstance(strategy, Reset):
                index = strategy.index
            elif (
                isinstance(strategy, LastUnused)
                and state.cursor is not None
                and state.cursor not in state.used
            ):
                index = state.cursor
            else:
                index = 0 if state.cursor is None else state.cursor + 1

            info = self._derive(keychain, index)
            if isinstance(strategy, Reset) and state.cursor is not None and index < state.cursor:
                logger.warning(
                    f"{keychain.value} cursor reset backwards from {state.cursor} to {index}; "
                    "subsequent addresses may be reused"
                )
            state.cursor = index

        logger.debug(f"Issued {keychain.value} address #{index} ({type(strategy).__name__})")
        return info

    def _derive(self, keychain: KeychainKind, index: int) -> AddressInfo:
        address = self.provider.derive_address(keychain, index)
        return AddressInfo(index=index, address=address, keychain=keychain)

    def current_index(self, keychain: KeychainKind = KeychainKind.EXTERNAL) -> int | None:
        with self._locks[keychain]:
            return self._states[keychain].cursor

    def mark_used(self, keychain: KeychainKind, index: int) -> None:
        with self._locks[keychain]:
            self._states[keychain].used.add(index)

    def is_used(self, keychain: KeychainKind, index: int) -> bool:
        with self._locks[keychain]:
            return index in self._states[keychain].used

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """
        Hold every keychain lock.

        Lets a caller publish state that must change together with the index
        state. The locks are reentrant, so controller methods can be called
        inside the block by the same thread.
        """
        with ExitStack() as stack:
            for kind in KeychainKind:
                stack.enter_context(self._locks[kind])
            yield

    def used_indices(self, keychain: KeychainKind) -> frozenset[int]:
        with self._locks[keychain]:
            return frozenset(self._states[keychain].used)

    def observe_used(self, keychain: KeychainKind, indices: Iterable[int]) -> None:
        """
        Apply scan results for ``keychain``.

        The used set is replaced by ``indices`` and the cursor advances to the
        highest used index so ``New`` continues past it. The cursor never
        moves backwards here.
        """
        used = set(indices)
        with self._locks[keychain]:
            state = self._states[keychain]
            state.used = used
            if used:
                highest = max(used)
                if state.cursor is None or highest > state.cursor:
                    logger.debug(f"{keychain.value} cursor advanced to {highest} after scan")
                    state.cursor = highest

    def observe_all(self, used_by_keychain: Mapping[KeychainKind, Iterable[int]]) -> None:
        """Apply scan results for every keychain in one step."""
        with self.exclusive():
            for kind in KeychainKind:
                self.observe_used(kind, used_by_keychain.get(kind, ()))

    def export_state(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for kind in KeychainKind:
            with self._locks[kind]:
                state = self._states[kind]
                result[kind.value] = {"cursor": state.cursor, "used": sorted(state.used)}
        return result

    @classmethod
    def from_state(
        cls, provider: DescriptorProvider, data: dict[str, Any]
    ) -> AddressIndexController:
        """
        Rebuild a controller from ``export_state`` output.

        Raises:
            ValueError: If the data has the wrong shape or negative indices
        """
        controller = cls(provider)
        for kind in KeychainKind:
            entry = data.get(kind.value)
            if entry is None:
                continue
            if not isinstance(entry, dict):
                raise ValueError(f"Keychain state for {kind.value} must be an object")

            cursor = entry.get("cursor")
            used = entry.get("used", [])
            if cursor is not None and (not isinstance(cursor, int) or cursor < 0):
                raise ValueError(f"Invalid cursor for {kind.value}: {cursor!r}")
            if not isinstance(used, list) or not all(
                isinstance(i, int) and i >= 0 for i in used
            ):
                raise ValueError(f"Invalid used indices for {kind.value}: {used!r}")

            controller._states[kind] = _KeychainState(cursor=cursor, used=set(used))
        return controller
