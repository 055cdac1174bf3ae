"""Wallet generation and ledger verification helpers.

Key material comes from ``eth_account``; mnemonic wallets use the standard
Ethereum path ``m/44'/60'/0'/0/0``.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from eth_account import Account

from .chain import SigningError, checksum_address, derive_address
from .ledger import MalformedLedger, WalletRecord

logger = logging.getLogger(__name__)

DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"
MNEMONIC_WORDS = 12

Account.enable_unaudited_hdwallet_features()


def generate_wallets(count: int) -> List[WalletRecord]:
    """Create ``count`` random key/address pairs."""

    if count <= 0:
        raise ValueError(f"wallet count must be positive, got {count}")
    wallets: List[WalletRecord] = []
    for _ in range(count):
        account = Account.create()
        wallets.append(WalletRecord(address=account.address, private_key="0x" + bytes(account.key).hex()))
    logger.info("Generated %d wallets", count)
    return wallets


def generate_mnemonic_wallets(
    count: int, *, account_path: str = DEFAULT_DERIVATION_PATH
) -> List[WalletRecord]:
    """Create ``count`` wallets, each backed by its own 12-word mnemonic."""

    if count <= 0:
        raise ValueError(f"wallet count must be positive, got {count}")
    wallets: List[WalletRecord] = []
    for index in range(count):
        account, mnemonic = Account.create_with_mnemonic(
            num_words=MNEMONIC_WORDS, account_path=account_path
        )
        wallets.append(
            WalletRecord(
                address=account.address,
                private_key="0x" + bytes(account.key).hex(),
                mnemonic=mnemonic,
            )
        )
        logger.debug("Generated wallet %d: %s", index + 1, account.address)
    logger.info("Generated %d mnemonic wallets", count)
    return wallets


def check_address_key(address: str, private_key: str) -> Tuple[bool, str]:
    """Return ``(matches, reason)`` for one ledger row."""

    if not private_key:
        return False, "empty private key"
    clean_key = private_key[2:] if private_key[:2].lower() == "0x" else private_key
    if len(clean_key) != 64:
        return False, "private key has wrong length"
    try:
        derived = derive_address("0x" + clean_key)
    except SigningError:
        return False, "private key is not a valid secp256k1 key"
    try:
        expected = checksum_address(address)
    except ValueError:
        return False, "address is not a valid hex address"
    if expected.lower() == derived.lower():
        return True, "address matches"
    return False, "address does not match private key"


@dataclass
class VerificationReport:
    """Result of checking every row of a ledger."""

    header: List[str]
    total: int = 0
    matched: int = 0
    mismatched: List[Tuple[int, str]] = field(default_factory=list)
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.mismatched and not self.skipped


def verify_ledger(path: str | Path) -> VerificationReport:
    """Check that each row's private key controls its address.

    Only the first two columns are used, so ledgers with or without a
    mnemonic column both work. Rows with fewer than two columns are skipped
    and reported.
    """

    ledger_path = Path(path)
    try:
        with ledger_path.open(newline="", encoding="utf-8-sig") as handle:
            rows = list(csv.reader(handle))
    except FileNotFoundError as exc:
        raise MalformedLedger(f"ledger file not found: {ledger_path}") from exc

    if not rows:
        raise MalformedLedger(f"{ledger_path}: ledger is empty")
    header = [column.strip() for column in rows[0]]
    if len(header) < 2:
        raise MalformedLedger(
            f"{ledger_path}: expected at least an address and a private key column, got {header}"
        )

    report = VerificationReport(header=header)
    for row_number, row in enumerate(rows[1:], start=2):
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < 2:
            report.skipped.append((row_number, "not enough columns"))
            continue
        address = row[0].strip()
        private_key = row[1].strip()
        if not address:
            report.mismatched.append((row_number, "empty address"))
            continue
        report.total += 1
        matches, reason = check_address_key(address, private_key)
        if matches:
            report.matched += 1
            logger.debug("Row %d: %s matches", row_number, address)
        else:
            report.mismatched.append((row_number, f"{address} ({reason})"))
            logger.warning("Row %d: %s (%s)", row_number, address, reason)
    return report
