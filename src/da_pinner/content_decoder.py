"""
Content identifier decoding for DA commitments.

A DA commitment payload (tag byte already stripped) is a binary CID. It is
decoded twice: into a multibase base32 string for logging, and into a
structured CID from which the IPFS path is built.
"""

import logging

from multiformats import CID, multibase

from .errors import CidParseError, CidStringEncodingError
from .models import ContentReference

logger = logging.getLogger(__name__)


class ContentDecoder:
    """Decodes DA commitment payloads into content references."""

    DISPLAY_BASE: str = "base32"

    def to_cid_string(self, payload: bytes) -> str:
        """
        Render raw CID bytes as a multibase base32 string.

        Raises:
            CidStringEncodingError: If the bytes cannot be encoded
        """
        try:
            return multibase.encode(payload, self.DISPLAY_BASE)
        except Exception as e:
            raise CidStringEncodingError(
                f"Can't convert IPFS hash from tx data to string ID: {e}"
            ) from e

    def to_cid(self, payload: bytes, cid_string: str = "") -> CID:
        """
        Parse raw bytes as a binary CID.

        Raises:
            CidParseError: If the bytes are not a valid binary CID
        """
        try:
            cid = CID.decode(payload)
        except Exception as e:
            raise CidParseError(
                f"Can't convert IPFS CID string to cid object {cid_string}: {e}"
            ) from e

        # Binary CIDs carry no base; v0 is always base58btc
        if cid.version == 1:
            cid = cid.set(base=self.DISPLAY_BASE)
        return cid

    @staticmethod
    def to_path(cid: CID) -> str:
        """Build the IPFS retrieval path for a CID."""
        return f"/ipfs/{cid}"

    def decode(self, payload: bytes) -> ContentReference:
        """
        Decode a DA commitment payload.

        Args:
            payload: Payload bytes after the tag byte

        Returns:
            ContentReference with display string, CID, and IPFS path

        Raises:
            CidStringEncodingError: If the display string cannot be built
            CidParseError: If the payload is not a valid binary CID
        """
        cid_string = self.to_cid_string(payload)
        cid = self.to_cid(payload, cid_string)
        reference = ContentReference(
            cid_string=cid_string,
            cid=cid,
            path=self.to_path(cid),
        )
        logger.debug(f"Decoded content reference: {reference.to_dict()}")
        return reference
