from __future__ import annotations

from pathlib import Path

import pytest
from eth_account import Account

from account_splitting.chain import derive_address
from account_splitting.ledger import MalformedLedger
from account_splitting.wallets import (
    check_address_key,
    generate_mnemonic_wallets,
    generate_wallets,
    verify_ledger,
)

KEY_ONE = "0x%064x" % 1
ADDRESS_ONE = derive_address(KEY_ONE)
KEY_TWO = "0x%064x" % 2


def test_generated_wallets_are_consistent() -> None:
    wallets = generate_wallets(3)

    assert len(wallets) == 3
    assert len({wallet.address for wallet in wallets}) == 3
    for wallet in wallets:
        assert derive_address(wallet.private_key) == wallet.address
        assert wallet.mnemonic is None


def test_mnemonic_wallets_derive_from_their_phrase() -> None:
    wallet = generate_mnemonic_wallets(1)[0]

    assert len(wallet.mnemonic.split()) == 12
    restored = Account.from_mnemonic(wallet.mnemonic, account_path="m/44'/60'/0'/0/0")
    assert restored.address == wallet.address
    assert derive_address(wallet.private_key) == wallet.address


def test_generation_requires_positive_count() -> None:
    with pytest.raises(ValueError):
        generate_wallets(0)
    with pytest.raises(ValueError):
        generate_mnemonic_wallets(-1)


def test_check_address_key_reasons() -> None:
    assert check_address_key(ADDRESS_ONE, KEY_ONE) == (True, "address matches")
    assert check_address_key(ADDRESS_ONE.lower(), KEY_ONE[2:]) == (True, "address matches")
    assert check_address_key(ADDRESS_ONE, "")[1] == "empty private key"
    assert check_address_key(ADDRESS_ONE, "0x1234")[1] == "private key has wrong length"
    assert check_address_key(ADDRESS_ONE, "0x" + "0" * 64)[0] is False
    assert check_address_key("0xnot", KEY_ONE)[1] == "address is not a valid hex address"
    assert check_address_key(ADDRESS_ONE, KEY_TWO) == (False, "address does not match private key")


def test_verify_ledger_reports_mismatches(tmp_path: Path) -> None:
    path = tmp_path / "wallets.csv"
    path.write_text(
        "Address,Private Key,Mnemonic\n"
        f"{ADDRESS_ONE},{KEY_ONE},\n"
        f"{ADDRESS_ONE},{KEY_TWO},\n"
        "\n"
        "lonely\n"
        f",{KEY_ONE},\n"
    )

    report = verify_ledger(path)

    assert report.header == ["Address", "Private Key", "Mnemonic"]
    assert report.total == 2
    assert report.matched == 1
    assert [row for row, _reason in report.mismatched] == [3, 6]
    assert report.skipped == [(5, "not enough columns")]
    assert not report.ok


def test_verify_ledger_all_good(tmp_path: Path) -> None:
    path = tmp_path / "wallets.csv"
    path.write_text(f"Address,Private Key\n{ADDRESS_ONE},{KEY_ONE}\n")

    report = verify_ledger(path)

    assert report.ok
    assert report.matched == report.total == 1


def test_verify_ledger_rejects_missing_and_empty_files(tmp_path: Path) -> None:
    with pytest.raises(MalformedLedger):
        verify_ledger(tmp_path / "missing.csv")
    empty = tmp_path / "empty.csv"
    empty.write_text("")
    with pytest.raises(MalformedLedger):
        verify_ledger(empty)
