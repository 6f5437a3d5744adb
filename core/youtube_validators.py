"""
YouTube validation utilities for video identifiers and watch URLs.

The acquisition stage only accepts canonical watch URLs; everything else
is rejected as invalid input before any artifact is created.
"""

import re
import logging
from typing import Optional

from core.errors import InvalidInputError

logger = logging.getLogger(__name__)

WATCH_URL_PATTERN = re.compile(
    r'^https?://(www\.)?youtube\.com/watch\?v=([A-Za-z0-9_-]{11})(?:[&#].*)?$'
)


def is_valid_youtube_id(video_id: Optional[str]) -> bool:
    """
    Validate YouTube video ID format.

    YouTube video IDs must:
    - Be exactly 11 characters long
    - Use base64url alphabet: A-Z, a-z, 0-9, -, _
    - NOT end with -, _, or .

    Examples:
        >>> is_valid_youtube_id("dQw4w9WgXcQ")
        True
        >>> is_valid_youtube_id("abc")
        False
    """
    if not video_id or not isinstance(video_id, str):
        return False

    if len(video_id) != 11:
        return False

    # YouTube video IDs CAN start with hyphens and underscores, never end with them
    if video_id[-1] in ['-', '_', '.']:
        return False

    return bool(re.match(r'^[A-Za-z0-9_-]{11}$', video_id))


def is_valid_watch_url(url: Optional[str]) -> bool:
    if not url or not isinstance(url, str):
        return False
    match = WATCH_URL_PATTERN.match(url.strip())
    return bool(match) and is_valid_youtube_id(match.group(2))


def extract_video_id_from_url(url: str) -> Optional[str]:
    """
    Extract and validate video ID from a YouTube watch URL.

    Returns:
        Valid video ID or None if invalid/not found
    """
    if not isinstance(url, str):
        return None
    match = WATCH_URL_PATTERN.match(url.strip())
    if match and is_valid_youtube_id(match.group(2)):
        return match.group(2)
    return None


def extract_video_id(url: str) -> str:
    """
    Like extract_video_id_from_url, but malformed input is an error.

    Raises:
        InvalidInputError: url is not a canonical YouTube watch URL
    """
    video_id = extract_video_id_from_url(url)
    if video_id is None:
        logger.warning(f"Rejected malformed video URL: {url!r}")
        raise InvalidInputError(f"Invalid YouTube watch URL: {url!r}", stage="acquire")
    return video_id
