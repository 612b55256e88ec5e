"""Exception hierarchy for the DA Pinner service.

Errors are split by how the block scanner reacts to them: transient errors
are retried at the same block height after a fixed pause, fatal errors
propagate to the entry point and stop the process.
"""


class DaPinnerError(Exception):
    """Base exception for all errors raised by the DA Pinner."""


class ConfigurationError(DaPinnerError, ValueError):
    """Raised when configuration loading or validation fails."""


class CheckpointError(DaPinnerError):
    """Base class for checkpoint file errors."""


class CheckpointReadError(CheckpointError):
    """Raised when the checkpoint file is missing or malformed."""


class CheckpointWriteError(CheckpointError):
    """Raised when the checkpoint file cannot be written."""


class LedgerError(DaPinnerError):
    """Base class for ledger RPC errors."""


class LedgerConnectionError(LedgerError):
    """Raised when the ledger RPC endpoint is unreachable at startup."""


class BlockFetchError(LedgerError):
    """Raised when a block cannot be fetched. Transient."""

    def __init__(self, height: int, message: str) -> None:
        super().__init__(f"Unable to fetch block {height}: {message}")
        self.height = height


class SenderRecoveryError(LedgerError):
    """Raised when a transaction sender cannot be recovered. Fatal."""


class ContentDecodeError(DaPinnerError):
    """Base class for content identifier decoding errors.

    ``recoverable`` tells the scanner whether to pause and retry the block
    or to stop the process.
    """

    recoverable: bool = False


class CidStringEncodingError(ContentDecodeError):
    """Raised when the payload cannot be rendered as a multibase string."""

    recoverable = True


class CidParseError(ContentDecodeError):
    """Raised when the payload cannot be parsed as a binary CID."""

    recoverable = False


class PinError(DaPinnerError):
    """Raised when the content store rejects or fails a pin request. Transient."""


class ContentStoreConnectionError(DaPinnerError):
    """Raised when the content store is unreachable at startup."""
