"""Fan-out dispatcher: one funded sender pays many recipients via a batching contract."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Sequence

from .chain import (
    ChainClient,
    ChainError,
    OnChainRevert,
    SigningError,
    checksum_address,
    derive_address,
    encode_call_data,
    require_success,
)
from .config import BatchTransferConfig, ConfigurationError
from .fees import FeeQuote, compute_fee, format_quote_for_log, resolve_gas_limit, wei_to_ether
from .ledger import MalformedLedger, WalletRecord
from .model import Batch, DispatchOutcome, RunSummary, TransferIntent, UnitStatus

logger = logging.getLogger(__name__)

BATCH_SEND_SIGNATURE = "batchSend(address[],uint256[])"


def partition_recipients(
    recipients: Sequence[WalletRecord], amount: int, chunk_size: int
) -> List[Batch]:
    """Split ``recipients`` into consecutive batches of at most ``chunk_size``.

    Order is preserved and every recipient lands in exactly one batch. Each
    address is checksummed; an invalid one raises :class:`MalformedLedger`.
    """

    if chunk_size <= 0:
        raise ValueError(f"chunk size must be positive, got {chunk_size}")

    addresses: List[str] = []
    for row, wallet in enumerate(recipients, start=2):
        try:
            addresses.append(checksum_address(wallet.address))
        except ValueError as exc:
            raise MalformedLedger(f"row {row}: {exc}") from exc

    total_batches = (len(addresses) + chunk_size - 1) // chunk_size
    batches: List[Batch] = []
    for index in range(total_batches):
        chunk = tuple(addresses[index * chunk_size : (index + 1) * chunk_size])
        batches.append(
            Batch(
                recipients=chunk,
                amounts=(amount,) * len(chunk),
                index=index + 1,
                total_batches=total_batches,
            )
        )
    return batches


class BatchDispatcher:
    """Submit batches one at a time and stop at the first failed batch.

    Later batches draw on the same funding account, so once a batch fails
    nothing after it is attempted and the operator resumes by hand.
    """

    def __init__(
        self,
        client: ChainClient,
        config: BatchTransferConfig,
        sender: WalletRecord,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        try:
            self.contract_address = checksum_address(config.contract_address)
        except ValueError as exc:
            raise ConfigurationError(f"invalid contract address: {config.contract_address}") from exc
        self.client = client
        self.config = config
        self.sender = sender
        self._sleep = sleep

    def quote_fee(self) -> FeeQuote:
        quote = compute_fee(
            self.client.suggested_gas_price(),
            self.config.gas_multiplier,
            self.config.fixed_gas_limit,
            gas_buffer_percent=self.config.policy.gas_buffer_percent,
        )
        logger.info("Fee policy: %s", format_quote_for_log(quote))
        return quote

    def run(self, recipients: Sequence[WalletRecord]) -> RunSummary:
        sender_address = derive_address(self.sender.private_key)
        if sender_address.lower() != self.sender.address.lower():
            raise SigningError(
                f"sender key controls {sender_address}, not ledger address {self.sender.address}"
            )

        intent = TransferIntent(
            unit_amount=self.config.amount_per_wallet,
            fee=self.quote_fee(),
            max_units=self.config.max_wallets,
            pace_interval=self.config.policy.chunk_cooldown_seconds,
        )
        selected = intent.cap(recipients)
        if len(selected) < len(recipients):
            logger.info(
                "Ledger holds %d recipients; only the first %d will be paid",
                len(recipients),
                len(selected),
            )

        batches = partition_recipients(selected, intent.unit_amount, self.config.chunk_size)
        logger.info(
            "Paying %d recipients %s each from %s in %d batches of at most %d",
            len(selected),
            wei_to_ether(intent.unit_amount),
            sender_address,
            len(batches),
            self.config.chunk_size,
        )

        outcomes: List[DispatchOutcome] = []
        aborted = False
        for batch in batches:
            outcome = self._dispatch(batch, intent, sender_address)
            outcomes.append(outcome)
            if outcome.failed:
                aborted = True
                logger.error(
                    "Batch %d/%d failed (%s); aborting, %d batches not attempted. "
                    "Recipients from #%d onward were not paid.",
                    batch.index,
                    batch.total_batches,
                    outcome.error,
                    batch.total_batches - batch.index,
                    (batch.index - 1) * self.config.chunk_size + 1,
                )
                break
            if batch.index < batch.total_batches and intent.pace_interval > 0:
                logger.info("Waiting %.1fs before the next batch", intent.pace_interval)
                self._sleep(intent.pace_interval)

        summary = RunSummary(
            mode="batch",
            total_units=len(batches),
            outcomes=tuple(outcomes),
            aborted=aborted,
        )
        if not aborted:
            logger.info("All %d batches done; %d recipients paid", len(batches), len(selected))
        return summary

    def _dispatch(self, batch: Batch, intent: TransferIntent, sender_address: str) -> DispatchOutcome:
        label = f"batch {batch.index}/{batch.total_batches}"
        value = batch.total_value
        args = [list(batch.recipients), list(batch.amounts)]
        logger.info("Processing %s with %d recipients (value %d wei)", label, len(batch), value)

        try:
            gas_limit = resolve_gas_limit(
                intent.fee,
                lambda: self.client.estimate_gas(
                    sender_address,
                    self.contract_address,
                    value,
                    encode_call_data(BATCH_SEND_SIGNATURE, args),
                ),
                label=label,
            )
            tx_hash = self.client.submit_contract_call(
                self.sender.private_key,
                self.contract_address,
                BATCH_SEND_SIGNATURE,
                args,
                value,
                intent.fee.gas_price,
                gas_limit,
            )
        except ChainError as exc:
            return DispatchOutcome(
                unit_index=batch.index,
                status=UnitStatus.SUBMISSION_FAILED,
                address=sender_address,
                error=str(exc),
            )

        logger.info("%s %s: %s", label, UnitStatus.SUBMITTED.value, tx_hash)
        try:
            receipt = require_success(self.client.wait_confirmed(tx_hash))
        except OnChainRevert as exc:
            return DispatchOutcome(
                unit_index=batch.index,
                status=UnitStatus.CONFIRMED_REVERTED,
                address=sender_address,
                transaction_hash=tx_hash,
                gas_used=exc.receipt.gas_used,
                error=str(exc),
            )
        except ChainError as exc:
            return DispatchOutcome(
                unit_index=batch.index,
                status=UnitStatus.SUBMISSION_FAILED,
                address=sender_address,
                transaction_hash=tx_hash,
                error=str(exc),
            )

        logger.info("%s confirmed: %s, gas used %d", label, tx_hash, receipt.gas_used)
        return DispatchOutcome(
            unit_index=batch.index,
            status=UnitStatus.CONFIRMED_SUCCESS,
            address=sender_address,
            transaction_hash=tx_hash,
            gas_used=receipt.gas_used,
        )
