"""Typed JSON-RPC client for EVM-compatible nodes.

The client is a thin transport: each helper maps to one ``eth_*`` method and
returns the decoded JSON result. Quantities are converted from hex strings to
``int`` so callers never see the wire encoding. Signing happens locally in
:mod:`account_splitting.chain`; the node only ever receives raw transactions.
"""

from __future__ import annotations

import itertools
import json
import logging
from typing import Any, Dict, Optional

import requests
from requests import RequestException, Response

from .config import RPCConfig

logger = logging.getLogger(__name__)


class RPCError(RuntimeError):
    """Raised when the node responds with a JSON-RPC error object."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"RPC error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class RPCTransportError(RuntimeError):
    """Raised when the RPC endpoint is unreachable or returns malformed data."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_rpc_hint(error_obj: dict[str, Any] | RPCError | None) -> str | None:
    """Return a human-friendly hint for common EVM JSON-RPC errors."""

    if error_obj is None:
        return None

    message = ""
    if isinstance(error_obj, RPCError):
        message = error_obj.message
    elif isinstance(error_obj, dict):
        message = str(error_obj.get("message", ""))
    lowered = message.lower()

    if "nonce too low" in lowered or "already known" in lowered:
        return (
            "The sender already has a transaction with this nonce. Wait for pending "
            "transactions to confirm, then re-run for the remaining wallets."
        )
    if "insufficient funds" in lowered:
        return (
            "The sender cannot cover value + gasLimit * gasPrice. Fund the wallet or lower "
            "--amount / --gas-multiplier."
        )
    if "underpriced" in lowered or "fee too low" in lowered:
        return "The node rejected the gas price. Raise --gas-multiplier and retry."
    if "intrinsic gas too low" in lowered or "gas limit reached" in lowered:
        return "The gas limit is wrong for this transaction. Drop --gas-limit to use estimation."
    if "execution reverted" in lowered:
        return (
            "The call reverts on-chain. Check the contract address, the attached value and "
            "that every recipient address is valid."
        )
    return None


def to_quantity(value: int) -> str:
    """Encode ``value`` as a JSON-RPC hex quantity."""

    if value < 0:
        raise ValueError(f"quantities must be non-negative, got {value}")
    return hex(value)


def from_quantity(raw: Any) -> int:
    """Decode a JSON-RPC hex quantity (ints are passed through)."""

    if isinstance(raw, int):
        return raw
    if not isinstance(raw, str):
        raise RPCTransportError(f"Expected a hex quantity, got {raw!r}")
    try:
        return int(raw, 16)
    except ValueError as exc:
        raise RPCTransportError(f"Malformed hex quantity: {raw!r}") from exc


def _rpc_error(error: Any) -> RPCError:
    # Some gateways send a bare string instead of an error object.
    if not isinstance(error, dict):
        return RPCError(-1, str(error))
    return RPCError(error.get("code", -1), error.get("message", "unknown"), error.get("data"))


class EVMRPCClient:
    """JSON-RPC client for Ethereum-style nodes (geth, BSC, anvil, ...)."""

    def __init__(self, config: RPCConfig, session: requests.Session | None = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._ids = itertools.count(1)

    @property
    def endpoint(self) -> str:
        return self.config.endpoint

    def close(self) -> None:
        self._session.close()

    def call(self, method: str, params: Optional[list[Any]] = None, *, timeout: float | None = None) -> Any:
        """Perform a JSON-RPC request."""

        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        logger.debug("RPC call %s params=%s", method, params)
        try:
            response = self._session.post(
                self.config.endpoint,
                data=json.dumps(payload),
                headers={"content-type": "application/json"},
                timeout=timeout if timeout is not None else self.config.timeout,
            )
        except RequestException as exc:
            logger.error(
                "RPC connection failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            raise RPCTransportError(
                f"RPC connection to {self.config.endpoint} failed; check --rpc or "
                "ACCOUNT_SPLITTING_RPC_URL."
            ) from exc
        self._raise_for_status(response)
        try:
            result = response.json()
        except ValueError as exc:
            logger.debug("RPC JSON parse error: %s", response.text, exc_info=True)
            raise RPCTransportError("RPC server returned malformed JSON") from exc
        if not isinstance(result, dict):
            raise RPCTransportError("RPC server returned a non-object response")
        if result.get("error"):
            raise _rpc_error(result["error"])
        return result.get("result")

    def _raise_for_status(self, response: Response) -> None:
        if response.ok:
            return
        # Some nodes wrap JSON-RPC errors in HTTP 4xx/5xx; surface the body.
        try:
            err_body = response.json()
        except ValueError:
            err_body = response.text
        logger.error("RPC HTTP error %s from %s", response.status_code, response.url)
        logger.error("RPC error body: %s", err_body)
        if isinstance(err_body, dict) and err_body.get("error"):
            raise _rpc_error(err_body["error"])
        raise RPCTransportError(
            f"RPC server returned HTTP {response.status_code}; check the endpoint URL.",
            status_code=response.status_code,
        )

    # Convenience wrappers -------------------------------------------------

    def eth_chain_id(self) -> int:
        return from_quantity(self.call("eth_chainId"))

    def eth_block_number(self, *, timeout: float | None = None) -> int:
        return from_quantity(self.call("eth_blockNumber", timeout=timeout))

    def eth_gas_price(self) -> int:
        return from_quantity(self.call("eth_gasPrice"))

    def eth_estimate_gas(self, tx: Dict[str, Any]) -> int:
        return from_quantity(self.call("eth_estimateGas", [tx]))

    def eth_get_transaction_count(self, address: str, block: str = "pending") -> int:
        return from_quantity(self.call("eth_getTransactionCount", [address, block]))

    def eth_send_raw_transaction(self, raw_tx: str) -> str:
        return self.call("eth_sendRawTransaction", [raw_tx])

    def eth_get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any] | None:
        return self.call("eth_getTransactionReceipt", [tx_hash])
