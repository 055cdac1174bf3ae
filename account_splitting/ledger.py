"""Wallet ledger parsing and writing.

A ledger is a CSV file whose header is exactly ``Address, Private Key`` or
``Address, Private Key, Mnemonic``. Each data row becomes a
:class:`WalletRecord`. The reader checks shape only; whether a key actually
controls its address is checked at signing time or by
:func:`account_splitting.wallets.verify_ledger`.
"""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Sequence

logger = logging.getLogger(__name__)

HEADER_WITH_MNEMONIC = ("Address", "Private Key", "Mnemonic")
HEADER_KEYS_ONLY = ("Address", "Private Key")
ACCEPTED_HEADERS = (HEADER_WITH_MNEMONIC, HEADER_KEYS_ONLY)


class MalformedLedger(ValueError):
    """Raised when a wallet ledger file does not have the expected shape."""


@dataclass(frozen=True)
class WalletRecord:
    """One row of a wallet ledger."""

    address: str
    private_key: str
    mnemonic: str | None = None


def normalize_private_key(raw: str) -> str:
    """Return ``raw`` as lowercase hex with a ``0x`` prefix."""

    cleaned = raw.strip()
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    return "0x" + cleaned.lower()


def _clean_rows(rows: Iterable[Sequence[str]]) -> List[List[str]]:
    # Blank lines carry no data; csv yields them as empty lists.
    return [[field.strip() for field in row] for row in rows if any(field.strip() for field in row)]


def parse_wallet_rows(rows: Iterable[Sequence[str]], *, source: str = "<ledger>") -> List[WalletRecord]:
    """Validate already-split CSV rows and build wallet records."""

    records = _clean_rows(rows)
    if len(records) < 2:
        raise MalformedLedger(
            f"{source}: ledger is empty or malformed; expected a header and at least one data row"
        )

    header = tuple(records[0])
    if header not in ACCEPTED_HEADERS:
        raise MalformedLedger(
            f"{source}: unexpected header {list(header)}; expected {list(HEADER_WITH_MNEMONIC)}"
            f" or {list(HEADER_KEYS_ONLY)}"
        )

    width = len(header)
    wallets: List[WalletRecord] = []
    for line_number, row in enumerate(records[1:], start=2):
        if len(row) != width:
            raise MalformedLedger(
                f"{source}: row {line_number} has {len(row)} columns, expected {width}"
            )
        mnemonic = row[2] if width == 3 and row[2] else None
        wallets.append(
            WalletRecord(
                address=row[0],
                private_key=normalize_private_key(row[1]),
                mnemonic=mnemonic,
            )
        )
    return wallets


def read_wallet_ledger(path: str | Path) -> List[WalletRecord]:
    """Read ``path`` and return its wallet records in file order."""

    ledger_path = Path(path)
    try:
        with ledger_path.open(newline="", encoding="utf-8-sig") as handle:
            rows = list(csv.reader(handle))
    except FileNotFoundError as exc:
        raise MalformedLedger(f"ledger file not found: {ledger_path}") from exc
    except csv.Error as exc:
        raise MalformedLedger(f"{ledger_path}: unreadable CSV: {exc}") from exc

    wallets = parse_wallet_rows(rows, source=str(ledger_path))
    logger.debug("Read %d wallets from %s", len(wallets), ledger_path)
    return wallets


def write_wallet_ledger(path: str | Path, wallets: Sequence[WalletRecord]) -> Path:
    """Write ``wallets`` to ``path``, including the mnemonic column if any record has one."""

    ledger_path = Path(path)
    with_mnemonic = any(wallet.mnemonic for wallet in wallets)
    header = HEADER_WITH_MNEMONIC if with_mnemonic else HEADER_KEYS_ONLY
    with ledger_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(header)
        for wallet in wallets:
            row = [wallet.address, wallet.private_key]
            if with_mnemonic:
                row.append(wallet.mnemonic or "")
            writer.writerow(row)
    logger.info("Wrote %d wallets to %s", len(wallets), ledger_path)
    return ledger_path
