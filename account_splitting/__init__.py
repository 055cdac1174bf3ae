"""Batch transfer tooling for EVM-compatible chains."""

from .batch import BATCH_SEND_SIGNATURE, BatchDispatcher, partition_recipients
from .chain import (
    ChainClient,
    ChainConnectionError,
    ChainError,
    ConfirmationError,
    EstimationError,
    OnChainRevert,
    Receipt,
    SigningError,
    SubmissionError,
)
from .config import (
    BatchTransferConfig,
    ConfigurationError,
    DispatchPolicy,
    RPCConfig,
    SingleTransferConfig,
    load_rpc_config,
)
from .fees import FeeQuote, compute_fee, ether_to_wei
from .ledger import MalformedLedger, WalletRecord, read_wallet_ledger, write_wallet_ledger
from .model import Batch, DispatchOutcome, RunSummary, TransferIntent, UnitStatus
from .sequential import SequentialTransferDispatcher

__all__ = [
    "BATCH_SEND_SIGNATURE",
    "Batch",
    "BatchDispatcher",
    "BatchTransferConfig",
    "ChainClient",
    "ChainConnectionError",
    "ChainError",
    "ConfigurationError",
    "ConfirmationError",
    "DispatchOutcome",
    "DispatchPolicy",
    "EstimationError",
    "FeeQuote",
    "MalformedLedger",
    "OnChainRevert",
    "RPCConfig",
    "Receipt",
    "RunSummary",
    "SequentialTransferDispatcher",
    "SigningError",
    "SingleTransferConfig",
    "SubmissionError",
    "TransferIntent",
    "UnitStatus",
    "WalletRecord",
    "compute_fee",
    "ether_to_wei",
    "load_rpc_config",
    "partition_recipients",
    "read_wallet_ledger",
    "write_wallet_ledger",
]
