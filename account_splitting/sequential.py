"""Fan-in dispatcher: every ledger wallet sends a fixed amount to one target."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Sequence

from .chain import (
    ChainClient,
    ChainError,
    OnChainRevert,
    checksum_address,
    derive_address,
    require_success,
)
from .config import ConfigurationError, SingleTransferConfig
from .fees import FeeQuote, compute_fee, format_quote_for_log, resolve_gas_limit, wei_to_ether
from .ledger import WalletRecord
from .model import DispatchOutcome, RunSummary, TransferIntent, UnitStatus

logger = logging.getLogger(__name__)


class SequentialTransferDispatcher:
    """Send one direct transfer per wallet, strictly one after another.

    Wallets are independent accounts, so a failing wallet is recorded and the
    run moves on to the next one.
    """

    def __init__(
        self,
        client: ChainClient,
        config: SingleTransferConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        try:
            self.target_address = checksum_address(config.target_address)
        except ValueError as exc:
            raise ConfigurationError(f"invalid target address: {config.target_address}") from exc
        self.client = client
        self.config = config
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

    def run(self, wallets: Sequence[WalletRecord]) -> RunSummary:
        intent = TransferIntent(
            unit_amount=self.config.amount_per_wallet,
            fee=self.quote_fee(),
            max_units=self.config.max_wallets,
            pace_interval=self.config.delay_seconds,
        )
        selected = intent.cap(wallets)
        if len(selected) < len(wallets):
            logger.info(
                "Ledger holds %d wallets; only the first %d will be processed",
                len(wallets),
                len(selected),
            )
        total = len(selected)
        logger.info(
            "Sending %s from each of %d wallets to %s (delay %.1fs)",
            wei_to_ether(intent.unit_amount),
            total,
            self.target_address,
            intent.pace_interval,
        )

        outcomes: List[DispatchOutcome] = []
        for index, wallet in enumerate(selected, start=1):
            logger.info("Processing wallet %d/%d: %s", index, total, wallet.address)
            outcome = self._transfer(index, total, wallet, intent)
            outcomes.append(outcome)
            if outcome.failed:
                logger.error("Wallet %d/%d (%s) failed: %s", index, total, wallet.address, outcome.error)
            if index < total and intent.pace_interval > 0:
                logger.info("Waiting %.1fs before the next wallet", intent.pace_interval)
                self._sleep(intent.pace_interval)

        summary = RunSummary(mode="single", total_units=total, outcomes=tuple(outcomes))
        logger.info("Transfers done: %d succeeded, %d failed", summary.succeeded, summary.failed)
        return summary

    def _transfer(
        self, index: int, total: int, wallet: WalletRecord, intent: TransferIntent
    ) -> DispatchOutcome:
        label = f"wallet {index}/{total}"
        try:
            sender = derive_address(wallet.private_key)
            # Fresh per wallet: each sender is its own account.
            nonce = self.client.next_nonce(sender)
            gas_limit = resolve_gas_limit(
                intent.fee,
                lambda: self.client.estimate_gas(sender, self.target_address, intent.unit_amount),
                label=label,
            )
            tx_hash = self.client.submit_direct_transfer(
                wallet.private_key,
                self.target_address,
                intent.unit_amount,
                nonce,
                intent.fee.gas_price,
                gas_limit,
                expected_sender=wallet.address,
            )
        except ChainError as exc:
            return DispatchOutcome(
                unit_index=index,
                status=UnitStatus.SUBMISSION_FAILED,
                address=wallet.address,
                error=str(exc),
            )

        logger.info("%s %s: %s", label, UnitStatus.SUBMITTED.value, tx_hash)
        try:
            receipt = require_success(self.client.wait_confirmed(tx_hash))
        except OnChainRevert as exc:
            return DispatchOutcome(
                unit_index=index,
                status=UnitStatus.CONFIRMED_REVERTED,
                address=wallet.address,
                transaction_hash=tx_hash,
                gas_used=exc.receipt.gas_used,
                error=str(exc),
            )
        except ChainError as exc:
            return DispatchOutcome(
                unit_index=index,
                status=UnitStatus.SUBMISSION_FAILED,
                address=wallet.address,
                transaction_hash=tx_hash,
                error=str(exc),
            )

        logger.info("%s confirmed: %s, gas used %d", label, tx_hash, receipt.gas_used)
        return DispatchOutcome(
            unit_index=index,
            status=UnitStatus.CONFIRMED_SUCCESS,
            address=wallet.address,
            transaction_hash=tx_hash,
            gas_used=receipt.gas_used,
        )
