"""
Storage prefix policies.

Every object lives in the shared bucket under one logical prefix
(``avatars/...``, ``diaries/...``). Each prefix carries its own upload
policy: size limit and allowed MIME types. To add a storage area, add a
member to ``PrefixName`` and an entry to ``PREFIX_CONFIGS``.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


MB = 1024 * 1024

IMAGE_MIME_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")


class PrefixName(str, Enum):
    """Known storage areas."""
    AVATARS = "avatars"
    DIARIES = "diaries"


@dataclass(frozen=True)
class PrefixConfig:
    """Upload policy for one storage prefix."""
    name: str
    max_file_size: int  # bytes
    allowed_mime_types: frozenset
    is_public: bool

    @property
    def max_file_size_mb(self) -> int:
        return round(self.max_file_size / MB)


PREFIX_CONFIGS: dict[PrefixName, PrefixConfig] = {
    PrefixName.AVATARS: PrefixConfig(
        name=PrefixName.AVATARS.value,
        max_file_size=5 * MB,
        allowed_mime_types=frozenset(IMAGE_MIME_TYPES),
        is_public=True,
    ),
    PrefixName.DIARIES: PrefixConfig(
        name=PrefixName.DIARIES.value,
        max_file_size=5 * MB,
        allowed_mime_types=frozenset(IMAGE_MIME_TYPES),
        is_public=True,
    ),
}


def get_prefix_config(prefix: str) -> Optional[PrefixConfig]:
    """Look up a prefix policy by enum member or raw name."""
    try:
        return PREFIX_CONFIGS[PrefixName(prefix)]
    except ValueError:
        return None


def validate_file(prefix: str, file_type: str, file_size: int) -> tuple[bool, Optional[str], Optional[str]]:
    """
    Check a file against the prefix policy.

    Args:
        prefix: Prefix name (e.g. "diaries")
        file_type: MIME type reported by the client
        file_size: Size in bytes reported by the client

    Returns:
        Tuple of (valid, field, error_message)
        On success: (True, None, None)
        On error: (False, field_name, message)
    """
    config = get_prefix_config(prefix)
    if config is None:
        return False, "prefix", f"Invalid prefix name: {prefix}"

    if file_type not in config.allowed_mime_types:
        allowed = ", ".join(sorted(config.allowed_mime_types))
        return False, "file_type", f"File type not allowed. Allowed: {allowed}"

    if file_size > config.max_file_size:
        return False, "file_size", f"File size must be {config.max_file_size_mb}MB or less"

    return True, None, None
