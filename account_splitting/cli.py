"""Command-line interface for account-splitting.

Subcommands cover both transfer modes (``batch-transfer`` for one sender to
many recipients through the batching contract, ``single-transfer`` for many
senders to one target) plus the supporting wallet and node utilities.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Sequence

from .batch import BatchDispatcher
from .chain import ChainClient, ChainError
from .config import (
    DEFAULT_CHUNK_SIZE,
    BatchTransferConfig,
    ConfigurationError,
    SingleTransferConfig,
    load_dispatch_policy,
    load_rpc_config,
    set_default_config_path,
)
from .fees import ether_to_wei
from .ledger import MalformedLedger, read_wallet_ledger, write_wallet_ledger
from .model import RunSummary
from .probe import DEFAULT_BSC_NODES, OUTPUT_FORMATS, format_results, probe_nodes
from .rpc_client import RPCError, RPCTransportError
from .sequential import SequentialTransferDispatcher
from .wallets import generate_mnemonic_wallets, generate_wallets, verify_ledger

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

DEFAULT_BATCH_CONTRACT = "0x61e0336Ba3bEd95deD28b01ef9cD015d7F32437d"
DEFAULT_SINGLE_TARGET = "0x774d0d4281217deDB7ae7797D69968D6Ea07c1Ae"
DEFAULT_SENDER_CSV = "wallets/senders/w1.csv"
DEFAULT_WALLET_DIR = "./wallets"


class CLIError(RuntimeError):
    """Raised when CLI arguments are invalid."""


def _parse_amount(raw: str, flag: str) -> int:
    try:
        return ether_to_wei(raw)
    except ValueError as exc:
        raise CLIError(f"{flag}: {exc}") from exc


def _parse_multiplier(raw: str) -> Decimal:
    try:
        value = Decimal(raw)
    except ArithmeticError as exc:
        raise CLIError(f"--gas-multiplier: invalid number {raw}") from exc
    if not value.is_finite() or value <= 0:
        raise CLIError("--gas-multiplier must be greater than 0")
    return value


def _add_fee_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--gas-multiplier",
        default="1.0001",
        help="Multiplier applied to the node's suggested gas price (default: %(default)s)",
    )
    parser.add_argument(
        "--gas-limit",
        type=int,
        default=0,
        help="Fixed gas limit; when set, gas estimation is skipped (default: estimate)",
    )
    parser.add_argument(
        "--max-wallets",
        type=int,
        default=0,
        help="Process at most this many ledger rows (0 means no limit)",
    )
    parser.add_argument("--rpc", default=None, help="EVM JSON-RPC endpoint URL")
    parser.add_argument(
        "--json",
        dest="as_json",
        action="store_true",
        help="Print the run summary as JSON",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="account-splitting",
        description="Batch transfer and wallet tooling for EVM chains",
    )
    parser.add_argument("--config", default=None, help="YAML config file (default: ~/.account_splitting.yaml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    batch_parser = subparsers.add_parser(
        "batch-transfer",
        help="pay every wallet in a ledger from one sender via the batching contract",
    )
    batch_parser.add_argument("--csv", required=True, help="Recipient wallet ledger")
    batch_parser.add_argument(
        "--sender-csv", default=DEFAULT_SENDER_CSV, help="Ledger holding the funded sender"
    )
    batch_parser.add_argument(
        "--sender-index", type=int, default=0, help="Zero-based row of the sender in --sender-csv"
    )
    batch_parser.add_argument(
        "--contract", default=DEFAULT_BATCH_CONTRACT, help="Batching contract address"
    )
    batch_parser.add_argument(
        "--amount", default="0.1", help="Amount per recipient in ether (default: %(default)s)"
    )
    batch_parser.add_argument(
        "--batch-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help="Recipients per contract call (default: %(default)s)",
    )
    _add_fee_arguments(batch_parser)

    single_parser = subparsers.add_parser(
        "single-transfer",
        help="send a fixed amount from every wallet in a ledger to one target",
    )
    single_parser.add_argument("--csv", required=True, help="Sender wallet ledger")
    single_parser.add_argument("--target", default=DEFAULT_SINGLE_TARGET, help="Destination address")
    single_parser.add_argument(
        "--amount", default="0.0001", help="Amount per wallet in ether (default: %(default)s)"
    )
    single_parser.add_argument(
        "--delay",
        type=float,
        default=30.0,
        help="Seconds to wait between wallets (default: %(default)s)",
    )
    _add_fee_arguments(single_parser)

    check_parser = subparsers.add_parser(
        "check-rpc", help="probe RPC nodes for availability and latency"
    )
    check_parser.add_argument(
        "--timeout", type=float, default=5.0, help="Per-node timeout in seconds (default: %(default)s)"
    )
    check_parser.add_argument("--stats", action="store_true", help="Show latency statistics")
    check_parser.add_argument(
        "--format", choices=OUTPUT_FORMATS, default="text", help="Output format (default: %(default)s)"
    )
    check_parser.add_argument(
        "--node",
        action="append",
        default=None,
        help="Node URL to probe (repeatable; default: public BSC nodes)",
    )

    genwallet_parser = subparsers.add_parser("genwallet", help="generate random key wallets")
    genwallet_parser.add_argument("--number", "-n", type=int, default=10, help="Wallets to generate")
    genwallet_parser.add_argument("--output", "-o", default="secret.csv", help="Output file name")
    genwallet_parser.add_argument("--dir", "-d", default=DEFAULT_WALLET_DIR, help="Output directory")

    genmnemonic_parser = subparsers.add_parser(
        "genmnemonic", help="generate wallets backed by mnemonics"
    )
    genmnemonic_parser.add_argument("--number", "-n", type=int, default=10, help="Wallets to generate")
    genmnemonic_parser.add_argument("--output", "-o", default="mnemonic.csv", help="Output file name")
    genmnemonic_parser.add_argument("--dir", "-d", default=DEFAULT_WALLET_DIR, help="Output directory")

    verify_parser = subparsers.add_parser(
        "verifycsv", help="check that every ledger address matches its private key"
    )
    verify_parser.add_argument("--file", "-f", required=True, help="Ledger to verify")

    return parser


def _connect(args: argparse.Namespace) -> ChainClient:
    rpc_config = load_rpc_config(overrides={"endpoint": args.rpc})
    return ChainClient.connect(rpc_config)


def _report_summary(summary: RunSummary, as_json: bool) -> None:
    logger.info(
        "Run finished: %d units, %d succeeded, %d failed, %d not attempted",
        summary.total_units,
        summary.succeeded,
        summary.failed,
        summary.skipped,
    )
    for outcome in summary.outcomes:
        if outcome.failed:
            logger.warning(
                "Unit %d (%s) %s: %s",
                outcome.unit_index,
                outcome.address,
                outcome.status.value,
                outcome.error,
            )
    if as_json:
        print(json.dumps(summary.to_jsonable(), indent=2))


def _validate_common(args: argparse.Namespace) -> None:
    if args.max_wallets < 0:
        raise CLIError("--max-wallets must not be negative")
    if args.gas_limit < 0:
        raise CLIError("--gas-limit must not be negative")


def cmd_batch_transfer(args: argparse.Namespace) -> None:
    _validate_common(args)
    if args.batch_size <= 0:
        raise CLIError("--batch-size must be greater than 0")
    if args.sender_index < 0:
        raise CLIError("--sender-index must not be negative")
    amount = _parse_amount(args.amount, "--amount")
    if amount <= 0:
        raise CLIError("--amount must be greater than 0")

    config = BatchTransferConfig(
        contract_address=args.contract,
        amount_per_wallet=amount,
        gas_multiplier=_parse_multiplier(args.gas_multiplier),
        fixed_gas_limit=args.gas_limit,
        chunk_size=args.batch_size,
        max_wallets=args.max_wallets,
        policy=load_dispatch_policy(),
    )
    recipients = read_wallet_ledger(args.csv)
    senders = read_wallet_ledger(args.sender_csv)
    if args.sender_index >= len(senders):
        raise CLIError(f"--sender-index out of range (0-{len(senders) - 1})")
    sender = senders[args.sender_index]
    logger.info("Sender %s (index %d), recipients from %s", sender.address, args.sender_index, args.csv)

    dispatcher = BatchDispatcher(_connect(args), config, sender)
    summary = dispatcher.run(recipients)
    _report_summary(summary, args.as_json)
    if summary.aborted:
        failed = summary.outcomes[-1]
        raise CLIError(
            f"batch run aborted at batch {failed.unit_index}/{summary.total_units}: {failed.error}"
        )


def cmd_single_transfer(args: argparse.Namespace) -> None:
    _validate_common(args)
    if args.delay < 0:
        raise CLIError("--delay must not be negative")
    amount = _parse_amount(args.amount, "--amount")
    if amount <= 0:
        raise CLIError("--amount must be greater than 0")

    config = SingleTransferConfig(
        target_address=args.target,
        amount_per_wallet=amount,
        gas_multiplier=_parse_multiplier(args.gas_multiplier),
        fixed_gas_limit=args.gas_limit,
        max_wallets=args.max_wallets,
        delay_seconds=args.delay,
        policy=load_dispatch_policy(),
    )
    wallets = read_wallet_ledger(args.csv)
    dispatcher = SequentialTransferDispatcher(_connect(args), config)
    summary = dispatcher.run(wallets)
    _report_summary(summary, args.as_json)


def cmd_check_rpc(args: argparse.Namespace) -> None:
    if args.timeout <= 0:
        raise CLIError("--timeout must be greater than 0")
    nodes = args.node or list(DEFAULT_BSC_NODES)
    results = probe_nodes(nodes, args.timeout)
    print(format_results(results, args.format, show_stats=args.stats))


def _write_generated(args: argparse.Namespace, generate) -> None:
    if args.number <= 0:
        raise CLIError("--number must be greater than 0")
    directory = Path(args.dir or DEFAULT_WALLET_DIR)
    directory.mkdir(parents=True, exist_ok=True)
    output_path = write_wallet_ledger(directory / args.output, generate(args.number))
    print(f"Wrote {args.number} wallets to {output_path}")


def cmd_verify(args: argparse.Namespace) -> None:
    report = verify_ledger(args.file)
    print(f"Header: {report.header}")
    print(f"Checked: {report.total}")
    print(f"Matched: {report.matched}")
    print(f"Mismatched: {len(report.mismatched)}")
    for row_number, reason in report.mismatched:
        print(f"  row {row_number}: {reason}")
    for row_number, reason in report.skipped:
        print(f"  row {row_number}: skipped ({reason})")


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        set_default_config_path(args.config)
        if args.command == "batch-transfer":
            cmd_batch_transfer(args)
        elif args.command == "single-transfer":
            cmd_single_transfer(args)
        elif args.command == "check-rpc":
            cmd_check_rpc(args)
        elif args.command == "genwallet":
            _write_generated(args, generate_wallets)
        elif args.command == "genmnemonic":
            _write_generated(args, generate_mnemonic_wallets)
        elif args.command == "verifycsv":
            cmd_verify(args)
        else:  # pragma: no cover - argparse enforces choices
            raise CLIError(f"Unknown command: {args.command}")
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        logger.info("Interrupted by user")
    except (
        CLIError,
        ConfigurationError,
        MalformedLedger,
        ChainError,
        RPCError,
        RPCTransportError,
    ) as exc:
        parser.exit(1, f"error: {exc}\n")


if __name__ == "__main__":
    main(sys.argv[1:])
