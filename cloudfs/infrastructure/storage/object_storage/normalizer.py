"""
Metadata normalization

Turns provider stat/listing fields into ObjectRecord so that the same
object listed through any adapter has the same shape.
"""

import posixpath
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

from .models import ObjectRecord

_FALLBACK_TIME_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)


def _to_epoch(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


def parse_timestamp(value: Any) -> Optional[int]:
    """
    Parse a provider time value into Unix epoch seconds

    Accepts datetime objects, epoch numbers (or numeric strings),
    RFC 2822 / RFC 1123 strings and ISO 8601 strings. Naive values are UTC.

    Returns:
        Epoch seconds, or None when the value is missing or unparseable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _to_epoch(value)
    if isinstance(value, (int, float)):
        return int(value)

    text = str(value).strip()
    if not text:
        return None
    try:
        return int(float(text))
    except ValueError:
        pass

    try:
        return _to_epoch(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass

    try:
        return _to_epoch(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass

    for fmt in _FALLBACK_TIME_FORMATS:
        try:
            return _to_epoch(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def parse_size(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def normalize_etag(value: Any) -> Optional[str]:
    if not value:
        return None
    return str(value).strip().strip('"')


def _path_parts(path: str):
    trimmed = path.rstrip("/")
    dirname, basename = posixpath.split(trimmed)
    filename, extension = posixpath.splitext(basename)
    if not filename:
        # dotfiles such as ".env" have no extension
        filename, extension = basename, ""
    return dirname, basename, filename, extension.lstrip(".")


def build_record(
    path: str,
    size: Any = None,
    timestamp: Any = None,
    mimetype: Optional[str] = None,
    etag: Any = None,
) -> ObjectRecord:
    """
    Build a record for a listed or stat-ed key

    A key ending in "/" becomes a directory record and drops size and etag.
    """
    path = path.lstrip("/")
    if path.endswith("/"):
        return directory_record(path, timestamp=timestamp)

    dirname, basename, filename, extension = _path_parts(path)
    return ObjectRecord(
        type="file",
        path=path,
        dirname=dirname,
        basename=basename,
        filename=filename,
        extension=extension,
        size=parse_size(size),
        timestamp=parse_timestamp(timestamp),
        mimetype=mimetype or None,
        etag=normalize_etag(etag),
    )


def directory_record(path: str, timestamp: Any = None) -> ObjectRecord:
    """Synthetic record for a directory (common prefix or placeholder object)"""
    path = path.lstrip("/")
    if not path.endswith("/"):
        path = f"{path}/"
    dirname, basename, _, _ = _path_parts(path)
    return ObjectRecord(
        type="dir",
        path=path,
        dirname=dirname,
        basename=basename,
        filename=basename,
        extension="",
        timestamp=parse_timestamp(timestamp),
    )
