"""
Checkpoint persistence for the block scanner.

The checkpoint is a single decimal block height in a plain-text file.
"""

import logging
import os
import tempfile
from pathlib import Path

from .config import MAX_BLOCK_HEIGHT
from .errors import CheckpointReadError, CheckpointWriteError

logger = logging.getLogger(__name__)


class CheckpointStore:
    """
    Reads and writes the last processed block height.

    The store remembers the highest value it has read or written and refuses
    to move the file backwards.
    """

    def __init__(self, path: str | Path):
        """
        Initialize the checkpoint store.

        Args:
            path: Path of the checkpoint file
        """
        self.path = Path(path)
        self._last_height: int | None = None

    @property
    def last_height(self) -> int | None:
        """Highest height read from or written to the file in this process."""
        return self._last_height

    def load(self) -> int:
        """
        Read the persisted block height.

        Returns:
            The stored block height

        Raises:
            CheckpointReadError: If the file is missing or malformed
        """
        try:
            contents = self.path.read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError) as e:
            raise CheckpointReadError(
                f"unable to open last processed block file {self.path}: {e}"
            ) from e

        text = contents.strip()
        if not text.isdigit():
            raise CheckpointReadError(
                f"unable to decode last processed block file {self.path}: {contents!r}"
            )

        height = int(text)
        if height > MAX_BLOCK_HEIGHT:
            raise CheckpointReadError(
                f"last processed block in {self.path} out of range: {height}"
            )

        self._last_height = height
        return height

    def store(self, height: int) -> bool:
        """
        Overwrite the persisted block height.

        The value is written to a temporary file next to the checkpoint and
        moved into place, so readers never see a partial write.

        Args:
            height: Block height to persist

        Returns:
            True if the file was written, False if the height would move the
            checkpoint backwards

        Raises:
            ValueError: If the height is not a valid unsigned 64-bit value
            CheckpointWriteError: If the file cannot be written
        """
        if not 0 <= height <= MAX_BLOCK_HEIGHT:
            raise ValueError(f"Block height out of range: {height}")

        if self._last_height is not None and height < self._last_height:
            logger.warning(
                f"Refusing to move checkpoint backwards from {self._last_height} to {height}"
            )
            return False

        directory = self.path.parent
        try:
            fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="ascii") as tmp_file:
                    tmp_file.write(str(height))
                os.chmod(tmp_name, 0o644)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CheckpointWriteError(
                f"unable to write last processed block file {self.path}: {e}"
            ) from e

        self._last_height = height
        logger.debug(f"Checkpoint stored: {height}")
        return True
