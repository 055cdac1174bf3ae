"""Chain client facade used by the dispatchers.

``ChainClient`` exposes the handful of capabilities a transfer run needs:
chain id, gas price, gas estimation, nonce lookup, signed submission and
receipt polling. Transactions are signed locally with ``eth_account`` and
pushed through :class:`~account_splitting.rpc_client.EVMRPCClient` as raw
EIP-155 legacy transactions with an explicit ``gasPrice``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Sequence

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import function_signature_to_4byte_selector, is_address, to_checksum_address

from .config import RPCConfig
from .rpc_client import (
    EVMRPCClient,
    RPCError,
    RPCTransportError,
    format_rpc_hint,
    from_quantity,
    to_quantity,
)

logger = logging.getLogger(__name__)


class ChainError(RuntimeError):
    """Base class for failures talking to the chain."""


class ChainConnectionError(ChainError):
    """Raised when the endpoint cannot be reached or identified."""


class EstimationError(ChainError):
    """Raised when the node cannot estimate gas for a transaction."""


class SubmissionError(ChainError):
    """Raised when a transaction cannot be signed or is rejected by the node."""


class SigningError(SubmissionError):
    """Raised when a private key is unusable or does not match its address."""


class ConfirmationError(ChainError):
    """Raised when a receipt cannot be obtained in time."""


class OnChainRevert(ChainError):
    """Raised when a mined transaction reports execution failure."""

    def __init__(self, receipt: "Receipt") -> None:
        super().__init__(
            f"transaction {receipt.transaction_hash} reverted (gas used {receipt.gas_used})"
        )
        self.receipt = receipt


def _with_hint(message: str, exc: Exception) -> str:
    hint = format_rpc_hint(exc) if isinstance(exc, RPCError) else None
    if hint:
        return f"{message}: {exc}\nHint: {hint}"
    return f"{message}: {exc}"


def _hex(data: bytes) -> str:
    return "0x" + bytes(data).hex()


def checksum_address(raw: str) -> str:
    """Return ``raw`` in EIP-55 form or raise ``ValueError``."""

    if not is_address(raw):
        raise ValueError(f"invalid address: {raw}")
    return to_checksum_address(raw)


def load_signer(private_key: str) -> LocalAccount:
    """Return the account for ``private_key`` or raise :class:`SigningError`."""

    try:
        return Account.from_key(private_key)
    except Exception as exc:
        # eth_account surfaces bad hex, bad length and out-of-range keys as
        # unrelated exception types.
        raise SigningError(f"invalid private key: {exc}") from exc


def derive_address(private_key: str) -> str:
    """Return the checksummed address controlled by ``private_key``."""

    return load_signer(private_key).address


def _argument_types(function_signature: str) -> list[str]:
    start = function_signature.find("(")
    if start <= 0 or not function_signature.endswith(")"):
        raise ValueError(f"malformed function signature: {function_signature}")
    inner = function_signature[start + 1 : -1]
    if "(" in inner:
        raise ValueError(f"tuple arguments are not supported: {function_signature}")
    return [part.strip() for part in inner.split(",") if part.strip()]


def encode_function_call(function_signature: str, args: Sequence[Any]) -> bytes:
    """ABI-encode a call as ``selector || encode(args)``."""

    arg_types = _argument_types(function_signature)
    if len(arg_types) != len(args):
        raise ValueError(
            f"{function_signature} takes {len(arg_types)} arguments, got {len(args)}"
        )
    selector = function_signature_to_4byte_selector(function_signature)
    return selector + abi_encode(arg_types, list(args))


def encode_call_data(function_signature: str, args: Sequence[Any]) -> bytes:
    """Like :func:`encode_function_call` but raises :class:`SubmissionError`."""

    try:
        return encode_function_call(function_signature, args)
    except (EncodingError, TypeError, ValueError) as exc:
        raise SubmissionError(f"could not encode {function_signature}: {exc}") from exc


@dataclass(frozen=True)
class Receipt:
    """The parts of a transaction receipt the dispatchers care about."""

    transaction_hash: str
    status: int
    gas_used: int
    block_number: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, payload: Dict[str, Any]) -> "Receipt":
        if not isinstance(payload, dict):
            raise RPCTransportError(f"expected a receipt object, got {payload!r}")
        if payload.get("status") is None:
            raise RPCTransportError(f"receipt for {payload.get('transactionHash')} has no status")
        block = payload.get("blockNumber")
        return cls(
            transaction_hash=str(payload.get("transactionHash")),
            status=from_quantity(payload["status"]),
            gas_used=from_quantity(payload.get("gasUsed", "0x0")),
            block_number=from_quantity(block) if block is not None else None,
        )


class ChainClient:
    """Capability surface over one EVM endpoint."""

    def __init__(
        self,
        rpc: EVMRPCClient,
        *,
        receipt_timeout: float,
        poll_interval: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.rpc = rpc
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock
        self._chain_id: int | None = None

    @classmethod
    def connect(cls, config: RPCConfig) -> "ChainClient":
        """Open a client for ``config.endpoint`` and confirm it answers."""

        client = cls(
            EVMRPCClient(config),
            receipt_timeout=config.receipt_timeout,
            poll_interval=config.poll_interval,
        )
        chain_id = client.chain_id()
        logger.info("Connected to %s (chain id %d)", config.endpoint, chain_id)
        return client

    def chain_id(self) -> int:
        if self._chain_id is None:
            try:
                self._chain_id = self.rpc.eth_chain_id()
            except (RPCError, RPCTransportError) as exc:
                raise ChainConnectionError(
                    f"could not read chain id from {self.rpc.endpoint}: {exc}"
                ) from exc
        return self._chain_id

    def suggested_gas_price(self) -> int:
        try:
            return self.rpc.eth_gas_price()
        except (RPCError, RPCTransportError) as exc:
            raise ChainConnectionError(_with_hint("could not fetch gas price", exc)) from exc

    def estimate_gas(self, sender: str, to: str, value: int, data: bytes = b"") -> int:
        tx: Dict[str, Any] = {"from": sender, "to": to, "value": to_quantity(value)}
        if data:
            tx["data"] = _hex(data)
        try:
            return self.rpc.eth_estimate_gas(tx)
        except (RPCError, RPCTransportError) as exc:
            raise EstimationError(_with_hint("gas estimation failed", exc)) from exc

    def next_nonce(self, address: str) -> int:
        try:
            return self.rpc.eth_get_transaction_count(address, "pending")
        except (RPCError, RPCTransportError) as exc:
            raise SubmissionError(_with_hint(f"could not fetch nonce for {address}", exc)) from exc

    def submit_contract_call(
        self,
        signer_key: str,
        contract_address: str,
        function_signature: str,
        args: Sequence[Any],
        value: int,
        gas_price: int,
        gas_limit: int,
    ) -> str:
        """Sign and send a call to ``contract_address``; returns the tx hash."""

        signer = load_signer(signer_key)
        data = encode_call_data(function_signature, args)
        nonce = self.next_nonce(signer.address)
        return self._sign_and_send(signer, contract_address, value, nonce, gas_price, gas_limit, data)

    def submit_direct_transfer(
        self,
        signer_key: str,
        to: str,
        value: int,
        nonce: int,
        gas_price: int,
        gas_limit: int,
        *,
        expected_sender: str | None = None,
    ) -> str:
        """Sign and send a plain value transfer; returns the tx hash.

        When ``expected_sender`` is given the key must control that address.
        """

        signer = load_signer(signer_key)
        if expected_sender is not None and signer.address.lower() != expected_sender.lower():
            raise SigningError(
                f"private key controls {signer.address}, not ledger address {expected_sender}"
            )
        return self._sign_and_send(signer, to, value, nonce, gas_price, gas_limit, b"")

    def _sign_and_send(
        self,
        signer: LocalAccount,
        to: str,
        value: int,
        nonce: int,
        gas_price: int,
        gas_limit: int,
        data: bytes,
    ) -> str:
        tx = {
            "nonce": nonce,
            "gasPrice": gas_price,
            "gas": gas_limit,
            "to": to_checksum_address(to),
            "value": value,
            "data": data,
            "chainId": self.chain_id(),
        }
        try:
            signed = signer.sign_transaction(tx)
        except Exception as exc:
            raise SigningError(f"could not sign transaction from {signer.address}: {exc}") from exc
        raw = getattr(signed, "raw_transaction", None) or getattr(signed, "rawTransaction")
        local_hash = _hex(signed.hash)
        try:
            node_hash = self.rpc.eth_send_raw_transaction(_hex(raw))
        except (RPCError, RPCTransportError) as exc:
            raise SubmissionError(_with_hint("transaction rejected", exc)) from exc
        if node_hash and str(node_hash).lower() != local_hash.lower():
            logger.warning("Node returned hash %s for locally signed %s", node_hash, local_hash)
        return local_hash

    def wait_confirmed(self, tx_hash: str) -> Receipt:
        """Poll for the receipt of ``tx_hash`` until ``receipt_timeout`` elapses."""

        deadline = self._clock() + self.receipt_timeout
        while True:
            try:
                payload = self.rpc.eth_get_transaction_receipt(tx_hash)
                if payload:
                    return Receipt.from_rpc(payload)
            except (RPCError, RPCTransportError) as exc:
                raise ConfirmationError(f"receipt lookup for {tx_hash} failed: {exc}") from exc
            if self._clock() >= deadline:
                raise ConfirmationError(
                    f"transaction {tx_hash} not mined within {self.receipt_timeout:.0f}s"
                )
            logger.debug("Waiting for receipt of %s", tx_hash)
            self._sleep(self.poll_interval)


def require_success(receipt: Receipt) -> Receipt:
    """Return ``receipt`` if it succeeded, else raise :class:`OnChainRevert`."""

    if not receipt.succeeded:
        raise OnChainRevert(receipt)
    return receipt
