"""HKDF-SHA256 session key derivation."""

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .utils import concat
from ..exceptions import ValidationError

KEY_LENGTH = 32
DEFAULT_INFO_PREFIX = "MyProtocol key"

# Fixed all-zero salt, and the all-zero block prepended to the DH material
KDF_SALT = bytes(32)
KDF_PADDING = bytes(32)


def derive(
    raw_dh_output: bytes,
    purpose_index: int,
    info_prefix: str = DEFAULT_INFO_PREFIX,
) -> bytes:
    """
    Derive a 32-byte key from concatenated DH outputs.

    Args:
        raw_dh_output: Concatenated DH results
        purpose_index: Domain separation index, 0 for the session key
        info_prefix: Protocol name used to build the HKDF info string

    Returns:
        32-byte derived key
    """
    if purpose_index < 0:
        raise ValidationError(f"Purpose index must be non-negative, got {purpose_index}")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=KDF_SALT,
        info=f"{info_prefix}{purpose_index + 1}".encode("utf-8"),
    )
    return hkdf.derive(concat(KDF_PADDING, raw_dh_output))
