"""Asset identifier generation."""

import re
import secrets

from vodstream.modules.media.errors import IdentityGenerationError

ASSET_ID_BYTES = 16
MIN_ASSET_ID_BYTES = 12
ASSET_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def generate_asset_id(num_bytes: int = ASSET_ID_BYTES) -> str:
    """Generate a random lowercase hex asset id.

    Args:
        num_bytes: Bytes of randomness; the id is twice as many hex chars

    Raises:
        ValueError: If fewer than 12 bytes are requested
        IdentityGenerationError: If the OS randomness source fails
    """
    if num_bytes < MIN_ASSET_ID_BYTES:
        raise ValueError(f"Asset ids need at least {MIN_ASSET_ID_BYTES} bytes, got {num_bytes}")
    try:
        return secrets.token_hex(num_bytes)
    except (OSError, NotImplementedError) as e:
        raise IdentityGenerationError(f"Randomness source unavailable: {e}") from e


def is_valid_asset_id(value) -> bool:
    return isinstance(value, str) and ASSET_ID_PATTERN.fullmatch(value) is not None
