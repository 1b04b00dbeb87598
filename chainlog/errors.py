"""Error taxonomy shared by the ingestion and retrieval paths."""

from enum import Enum


class ErrorKind(Enum):
    CONNECTIVITY = "connectivity"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    QUOTA_EXHAUSTED = "quota_exhausted"
    MALFORMED_INPUT = "malformed_input"
    INDEX_GAP = "index_gap"
    BULK_READ_EXHAUSTED = "bulk_read_exhausted"
    REJECTED = "rejected"
    COST_ESTIMATION = "cost_estimation"


class ChainlogError(Exception):
    kind: ErrorKind = ErrorKind.REJECTED


class LedgerError(ChainlogError):
    """A call into the ledger failed."""


class ConnectivityFailure(LedgerError):
    """Ledger unreachable, connection dropped, or call timed out."""

    kind = ErrorKind.CONNECTIVITY


class AppendRejected(LedgerError):
    kind = ErrorKind.REJECTED


class CostEstimationFailed(LedgerError):
    kind = ErrorKind.COST_ESTIMATION


class QuotaExhausted(ChainlogError):
    kind = ErrorKind.QUOTA_EXHAUSTED


class MalformedInput(ChainlogError, ValueError):
    kind = ErrorKind.MALFORMED_INPUT


class RetrievalError(ChainlogError):
    kind = ErrorKind.CONNECTIVITY


class BulkReadExhausted(RetrievalError):
    """Both the per-index reads and the bulk read failed."""

    kind = ErrorKind.BULK_READ_EXHAUSTED
