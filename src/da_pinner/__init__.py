"""
DA Pinner package.

Scans L1 for batcher DA commitments and pins the referenced data on IPFS.
"""

from .block_scanner import BlockScanner, ScanState
from .checkpoint_store import CheckpointStore
from .config import PinnerConfig
from .content_decoder import ContentDecoder
from .models import BatcherTransaction, Block, ContentReference
from .pin_requester import PinRequester
from .tx_validator import TransactionValidator

__all__ = [
    "BatcherTransaction",
    "Block",
    "BlockScanner",
    "CheckpointStore",
    "ContentDecoder",
    "ContentReference",
    "PinRequester",
    "PinnerConfig",
    "ScanState",
    "TransactionValidator",
]
__version__ = "0.1.0"
