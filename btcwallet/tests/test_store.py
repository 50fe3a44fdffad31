"""
Tests for address index persistence.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from btcwallet.wallet.address_index import AddressIndexController, New, Reset
from btcwallet.wallet.models import KeychainKind
from btcwallet.wallet.store import AddressIndexStore, StateFileError, descriptor_id


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "wallets" / "test.index.json"


def test_missing_file_gives_fresh_state(state_path: Path, stub_provider) -> None:
    controller = AddressIndexStore(state_path).load(stub_provider)
    assert controller.current_index(KeychainKind.EXTERNAL) is None
    assert not state_path.exists()


def test_round_trip(state_path: Path, stub_provider) -> None:
    store = AddressIndexStore(state_path)
    controller = AddressIndexController(stub_provider)
    controller.next_address(Reset(4))
    controller.next_address(New(), KeychainKind.INTERNAL)
    controller.mark_used(KeychainKind.EXTERNAL, 1)
    store.save(controller)

    restored = store.load(stub_provider)
    assert restored.current_index(KeychainKind.EXTERNAL) == 4
    assert restored.current_index(KeychainKind.INTERNAL) == 0
    assert restored.is_used(KeychainKind.EXTERNAL, 1)
    assert restored.next_address(New()).index == 5


def test_atomic_write_leaves_no_temp_file(state_path: Path, stub_provider) -> None:
    store = AddressIndexStore(state_path)
    store.save(AddressIndexController(stub_provider))

    assert state_path.exists()
    assert not state_path.with_suffix(".tmp").exists()
    document = json.loads(state_path.read_text())
    assert document["version"] == 1
    assert document["descriptor_id"] == descriptor_id(stub_provider)


def test_malformed_json(state_path: Path, stub_provider) -> None:
    state_path.parent.mkdir(parents=True)
    state_path.write_text("{not json")
    with pytest.raises(StateFileError):
        AddressIndexStore(state_path).load(stub_provider)


@pytest.mark.parametrize(
    "document",
    [
        [],
        {"version": 99},
        {"version": 1, "descriptor_id": "0000000000000000", "keychains": {}},
    ],
)
def test_unusable_documents(state_path: Path, stub_provider, document) -> None:
    state_path.parent.mkdir(parents=True)
    state_path.write_text(json.dumps(document))
    with pytest.raises(StateFileError):
        AddressIndexStore(state_path).load(stub_provider)


def test_invalid_keychain_state(state_path: Path, stub_provider) -> None:
    state_path.parent.mkdir(parents=True)
    document = {
        "version": 1,
        "descriptor_id": descriptor_id(stub_provider),
        "keychains": {"external": {"cursor": -5, "used": []}},
    }
    state_path.write_text(json.dumps(document))
    with pytest.raises(StateFileError, match="Invalid address index state"):
        AddressIndexStore(state_path).load(stub_provider)


def test_other_descriptor_refused(state_path: Path, make_provider) -> None:
    store = AddressIndexStore(state_path)
    store.save(AddressIndexController(make_provider(seed="first")))
    with pytest.raises(StateFileError, match="another descriptor"):
        store.load(make_provider(seed="second"))
