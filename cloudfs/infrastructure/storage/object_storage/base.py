"""
Object Storage Abstract Base Classes

Defines the filesystem contract that every cloud object storage adapter
(Tencent COS, Huawei OBS, Qiniu, MinIO) implements.
"""

import io
import logging
import mimetypes
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, List, Optional

from .models import (
    Contents,
    Expiration,
    ObjectRecord,
    StorageConfig,
    UploadOptions,
    Visibility,
)
from .normalizer import build_record, directory_record
from .path_codec import PathCodec

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"


class ObjectStorageInterface(ABC):
    """
    Abstract interface for object storage operations

    Point operations never raise provider errors: a failure is reported as
    False (for boolean operations) or None (for everything else). Listing is
    the exception and raises ProviderError, since a silently truncated
    directory listing is worse than a failure.
    """

    def __init__(self, config: StorageConfig):
        self.config = config

    def _resolve_options(self, options: Optional[UploadOptions]) -> UploadOptions:
        return options if options is not None else UploadOptions()

    def _should_encrypt(self, options: UploadOptions) -> bool:
        if options.encrypt is not None:
            return options.encrypt
        return self.config.encrypt

    @staticmethod
    def _to_bytes(contents: Contents) -> bytes:
        if isinstance(contents, str):
            return contents.encode("utf-8")
        return bytes(contents)

    @staticmethod
    def _content_type(path: str, options: UploadOptions) -> str:
        if options.mimetype:
            return options.mimetype
        return mimetypes.guess_type(path)[0] or DEFAULT_MIMETYPE

    @staticmethod
    def _written_record(path: str, body: bytes, mimetype: Optional[str], etag: Any = None) -> ObjectRecord:
        return build_record(path, size=len(body), mimetype=mimetype, etag=etag)

    @abstractmethod
    def write(
        self,
        path: str,
        contents: Contents,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """
        Upload contents to path, replacing any existing object

        Args:
            path: Object key
            contents: Object body
            options: Content type, visibility, encryption and provider extras

        Returns:
            Record of the written object, or None if nothing was written
        """
        pass

    def write_stream(
        self,
        path: str,
        stream: BinaryIO,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """Upload the remaining contents of a binary stream"""
        try:
            contents = stream.read()
        except (OSError, io.UnsupportedOperation) as e:
            logger.error(f"❌ 读取上传流失败 {path}: {e}")
            return None
        return self.write(path, contents, options)

    def update(
        self,
        path: str,
        contents: Contents,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        return self.write(path, contents, options)

    def update_stream(
        self,
        path: str,
        stream: BinaryIO,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        return self.write_stream(path, stream, options)

    def rename(self, path: str, new_path: str) -> bool:
        """
        Rename an object as copy-then-delete

        This is NOT atomic. If the copy succeeds but deleting the source
        fails, both objects exist afterwards and False is returned.
        """
        if not self.copy(path, new_path):
            return False
        if not self.delete(path):
            logger.warning(f"重命名未完成: {path} 已复制到 {new_path}，但源对象删除失败，两个对象同时存在")
            return False
        return True

    @abstractmethod
    def copy(self, path: str, new_path: str) -> bool:
        """Server-side copy; success is the provider's HTTP success"""
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        pass

    @abstractmethod
    def delete_directory(self, dirname: str) -> bool:
        """
        Delete every object under dirname

        Deleting an empty or missing directory is not an error.
        """
        pass

    def create_directory(
        self,
        dirname: str,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """Create a directory placeholder object (dirname + '/')"""
        key = PathCodec.directory_key(dirname)
        if self.write(key, b"", options) is None:
            return None
        return directory_record(key)

    def exists(self, path: str) -> bool:
        """
        Check whether a stat call succeeds

        Any failure, including transient provider errors, reads as "absent";
        a False result does not prove the object is gone.
        """
        return self.get_metadata(path) is not None

    @abstractmethod
    def get_metadata(self, path: str) -> Optional[ObjectRecord]:
        pass

    def get_size(self, path: str) -> Optional[int]:
        record = self.get_metadata(path)
        return record.size if record else None

    def get_mimetype(self, path: str) -> Optional[str]:
        record = self.get_metadata(path)
        return record.mimetype if record else None

    def get_timestamp(self, path: str) -> Optional[int]:
        record = self.get_metadata(path)
        return record.timestamp if record else None

    @abstractmethod
    def get_visibility(self, path: str) -> Optional[Visibility]:
        """
        Derive visibility from the object's ACL grants

        Returns:
            PUBLIC when all users are granted read, PRIVATE otherwise,
            None when the ACL cannot be fetched
        """
        pass

    @abstractmethod
    def set_visibility(self, path: str, visibility: Visibility) -> bool:
        pass

    @abstractmethod
    def get_url(self, path: str) -> str:
        """Public URL, through the CDN domain when one is configured"""
        pass

    @abstractmethod
    def get_temporary_url(
        self,
        path: str,
        expiration: Expiration,
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """
        Signed URL valid until expiration

        Args:
            path: Object key
            expiration: Absolute datetime or epoch seconds, or a timedelta from now
            options: Provider-specific signing parameters

        Returns:
            Signed URL, rewritten through the CDN domain when configured
        """
        pass

    @abstractmethod
    def read(self, path: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def read_stream(self, path: str) -> Optional[BinaryIO]:
        pass

    @abstractmethod
    def list_directory(self, directory: str = "", recursive: bool = False) -> List[ObjectRecord]:
        """
        List a directory

        Args:
            directory: Directory key, empty for the bucket root
            recursive: Include everything below nested directories

        Returns:
            Fully materialized list of records

        Raises:
            ProviderError: when any page of the listing fails
        """
        pass
