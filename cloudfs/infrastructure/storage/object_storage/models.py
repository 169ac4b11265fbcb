"""
Object storage data models

Configuration and result types shared by every adapter.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Union

from ...exceptions import ConfigurationError

Contents = Union[bytes, str]
Expiration = Union[datetime, timedelta, int, float]


class Visibility(str, Enum):
    """Object visibility, mapped to each provider's ACL vocabulary"""
    PUBLIC = "public"
    PRIVATE = "private"


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for one object storage disk"""
    bucket: str
    access_key: str = ""
    secret_key: str = ""
    region: Optional[str] = None
    endpoint: Optional[str] = None
    app_id: Optional[str] = None
    token: Optional[str] = None

    # CDN / public domain used for public and temporary URLs
    domain: Optional[str] = None
    scheme: str = "http"

    encrypt: bool = False
    read_from_cdn: bool = False

    timeout: int = 60
    connect_timeout: int = 60

    def require(self, *names: str) -> None:
        """
        Fail fast when required fields are empty

        Raises:
            ConfigurationError: naming every missing field
        """
        known = {f.name for f in fields(self)}
        missing = [name for name in names if name not in known or not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Missing required storage configuration: {', '.join(missing)}"
            )


@dataclass
class UploadOptions:
    """Per-call upload options"""
    mimetype: Optional[str] = None
    visibility: Optional[Visibility] = None
    params: Dict[str, Any] = field(default_factory=dict)
    # None means "use the disk's encrypt flag"
    encrypt: Optional[bool] = None


@dataclass(frozen=True)
class ObjectRecord:
    """
    Normalized metadata for a file or directory

    Optional fields stay None when the provider does not report them;
    directory records never carry size or etag.
    """
    type: str
    path: str
    dirname: str
    basename: str
    filename: str
    extension: str
    size: Optional[int] = None
    timestamp: Optional[int] = None
    mimetype: Optional[str] = None
    etag: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        return self.type == "dir"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, leaving out fields the provider did not supply"""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }
