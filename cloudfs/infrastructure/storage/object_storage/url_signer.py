"""
Temporary URL helpers

Providers sign URLs with a lifetime in seconds; callers pass an absolute
expiry (datetime or epoch seconds) or a timedelta from now.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Optional, Tuple, Union

import requests

from ...exceptions import ProviderError
from .models import Expiration
from .path_codec import PathCodec

# Lifetime of the internal URLs used to read objects over HTTP
READ_URL_TTL = timedelta(minutes=5)


def expires_at(expiration: Expiration, now: Optional[float] = None) -> int:
    """Absolute expiry as epoch seconds"""
    now = time.time() if now is None else now
    if isinstance(expiration, timedelta):
        return int(now + expiration.total_seconds())
    if isinstance(expiration, datetime):
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return int(expiration.timestamp())
    if isinstance(expiration, (int, float)) and not isinstance(expiration, bool):
        return int(expiration)
    raise TypeError(f"Unsupported expiration type: {type(expiration).__name__}")


def expires_in(expiration: Expiration, now: Optional[float] = None) -> int:
    """Seconds until expiry, never less than one"""
    now = time.time() if now is None else now
    return max(1, expires_at(expiration, now) - int(now))


def through_cdn(codec: PathCodec, signed_url: str) -> str:
    """Serve a signed URL from the CDN host, keeping the signature query"""
    return codec.rewrite(signed_url)


def download(
    session: requests.Session,
    url: str,
    timeout: Tuple[int, int],
    stream: bool = False
) -> Union[bytes, BinaryIO]:
    """
    Fetch an object over plain HTTP(S)

    Returns:
        The body, or the raw response stream when stream is True

    Raises:
        ProviderError: on transport errors or a non-2xx status
    """
    try:
        response = session.get(url, stream=stream, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        status = getattr(getattr(e, "response", None), "status_code", None)
        raise ProviderError(f"HTTP download failed: {e}", status=status) from e

    if stream:
        response.raw.decode_content = True
        return response.raw
    return response.content
