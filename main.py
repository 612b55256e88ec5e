#!/usr/bin/env python3
"""Entry point for the DA Pinner service.

Scans L1 from the last checkpointed block, finds DA commitments posted by
the batcher to its inbox, and pins the referenced data on an IPFS node.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from da_pinner.block_scanner import BlockScanner
from da_pinner.checkpoint_store import CheckpointStore
from da_pinner.config import PinnerConfig
from da_pinner.content_decoder import ContentDecoder
from da_pinner.errors import ConfigurationError, DaPinnerError
from da_pinner.pin_requester import PinRequester
from da_pinner.tx_validator import TransactionValidator
from da_pinner.utils.ledger_client import LedgerClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Options left unset fall back to the environment, then to defaults.
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="DA Pinner - Pin batcher DA commitments from L1 on IPFS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  L1_RPC_URL             - L1 RPC url
  IPFS_ENDPOINT          - IPFS kubo endpoint
  BATCHER_ADDRESS        - Batcher address
  BATCHER_INBOX          - Batcher inbox address
  START_BLOCK            - Starting block (L1 block of L2 genesis)
  LAST_BLOCK_PATH        - File storing the last processed block
  REQUEST_TIMEOUT        - L1 RPC request timeout in seconds (default: 30)
  PIN_TIMEOUT            - IPFS pin request timeout in seconds (default: 300)
  CHECKPOINT_EVERY_BLOCK - Persist the checkpoint after every block (default: false)
  LOG_LEVEL              - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument("--l1-rpc", help="L1 RPC url")
    parser.add_argument("--ipfs-endpoint", help="IPFS kubo endpoint")
    parser.add_argument("--batcher-address", help="Batcher address")
    parser.add_argument("--batcher-inbox", help="Batcher inbox address")
    parser.add_argument(
        "--start-block",
        type=int,
        help="Starting block (L1 block of L2 genesis)"
    )
    parser.add_argument(
        "--last-block-path",
        help="A path to a file to store the last processed block"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug logging (same as --log-level DEBUG)"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser.parse_args(argv)


async def start(config: PinnerConfig) -> None:
    """Connect to both endpoints and run the scanner until it stops.

    Raises:
        DaPinnerError: On connection failures or unrecoverable scan errors
    """
    ledger = LedgerClient(
        config.ledger.rpc_url,
        request_timeout=config.ledger.request_timeout
    )
    await ledger.connect()

    pin_requester = PinRequester(
        config.content_store.api_url,
        pin_timeout=config.content_store.pin_timeout
    )
    await pin_requester.check_connection()

    logger.info(
        f"Using batcher addresses batcher={config.batcher.batcher_address} "
        f"inbox={config.batcher.inbox_address}"
    )

    scanner = BlockScanner(
        ledger=ledger,
        validator=TransactionValidator(config.batcher, ledger),
        decoder=ContentDecoder(),
        pin_requester=pin_requester,
        checkpoint_store=CheckpointStore(config.scan.last_block_path),
        config=config.scan,
    )

    scan_task = asyncio.create_task(scanner.run())

    def _shutdown() -> None:
        logger.info("Received shutdown signal, stopping scanner...")
        scanner.stop()
        scan_task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown)

    try:
        await scan_task
    except asyncio.CancelledError:
        logger.info(f"Scanner cancelled at block {scanner.current_height}")
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for the DA Pinner service.

    Raises:
        SystemExit: On configuration or unrecoverable runtime errors
    """
    args: argparse.Namespace = parse_args(argv)

    setup_logging("DEBUG" if args.debug else args.log_level)
    logger.info("=== DA Pinner Starting ===")

    try:
        config: PinnerConfig = PinnerConfig.from_env().with_overrides(
            l1_rpc=args.l1_rpc,
            ipfs_endpoint=args.ipfs_endpoint,
            batcher_address=args.batcher_address,
            batcher_inbox=args.batcher_inbox,
            start_block=args.start_block,
            last_block_path=args.last_block_path,
        )
        config.log_config()

        await start(config)

    except ConfigurationError as e:
        logger.error(f"Configuration Error: {e}")
        sys.exit(1)

    except DaPinnerError as e:
        logger.error(f"Application failed: {e}", exc_info=True)
        sys.exit(1)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        sys.exit(0)
