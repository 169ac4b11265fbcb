"""
Huawei Cloud OBS Object Storage Adapter

Implements ObjectStorageInterface on top of esdk-obs-python. The OBS SDK
reports most failures through the response status instead of raising, so
every response goes through _check before it is used.
"""

import logging
from typing import Any, BinaryIO, Dict, List, Optional

from obs import (
    DeleteObjectsRequest,
    HeadPermission,
    Object,
    ObsClient,
    PutObjectHeader,
    SseKmsHeader,
)

from ...exceptions import NotFoundError, ProviderError
from .base import ObjectStorageInterface
from .models import (
    Contents,
    Expiration,
    ObjectRecord,
    StorageConfig,
    UploadOptions,
    Visibility,
)
from .normalizer import build_record
from .pagination import DEFAULT_PAGE_SIZE, ListingPage, chunked, list_all
from .path_codec import PathCodec
from .url_signer import expires_in, through_cdn

logger = logging.getLogger(__name__)

ALL_USERS_GROUPS = ("Everyone", "AllUsers")
PERMISSION_READ = "READ"
# Marker files some OBS console tools drop into "directories"
CONSOLE_MARKER_NAME = "obs.txt"


def _field(model: Any, name: str) -> Any:
    """Read a field from an OBS response model"""
    if model is None:
        return None
    if isinstance(model, dict):
        return model.get(name)
    return getattr(model, name, None)


def _check(resp: Any, action: str) -> Any:
    """
    Raise ProviderError unless the OBS response is a success

    Returns:
        The response body
    """
    status = _field(resp, "status")
    if status is None or status >= 300:
        error_cls = NotFoundError if status == 404 else ProviderError
        raise error_cls(
            f"{action}: {_field(resp, 'errorMessage') or _field(resp, 'reason') or 'unknown error'}",
            code=_field(resp, "errorCode"),
            status=status,
        )
    return _field(resp, "body")


class ObsAdapter(ObjectStorageInterface):
    """
    Huawei OBS implementation of ObjectStorageInterface

    OBS listings group keys one level per call, so recursive listings walk
    each common prefix instead of dropping the delimiter.
    """

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[ObsClient] = None,
        page_size: int = DEFAULT_PAGE_SIZE
    ):
        config.require("bucket", "endpoint")
        if client is None:
            config.require("access_key", "secret_key")
        super().__init__(config)
        self.bucket = config.bucket
        self.codec = PathCodec(config.domain, config.scheme)
        self.page_size = page_size
        self.client = client or ObsClient(
            access_key_id=config.access_key,
            secret_access_key=config.secret_key,
            security_token=config.token,
            server=config.endpoint,
            is_secure=config.scheme == "https",
            timeout=config.timeout,
        )

    def _put_headers(self, content_type: str, options: UploadOptions) -> PutObjectHeader:
        return PutObjectHeader(
            contentType=content_type,
            acl=self._acl(options.visibility) if options.visibility is not None else None,
            sseHeader=SseKmsHeader(encryption="kms") if self._should_encrypt(options) else None,
        )

    @staticmethod
    def _acl(visibility: Visibility) -> str:
        if visibility == Visibility.PUBLIC:
            return HeadPermission.PUBLIC_READ
        return HeadPermission.PRIVATE

    def write(
        self,
        path: str,
        contents: Contents,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """Upload contents to OBS"""
        options = self._resolve_options(options)
        key = PathCodec.normalize_key(path)
        body = self._to_bytes(contents)
        content_type = self._content_type(key, options)
        headers = self._put_headers(content_type, options)
        try:
            logger.debug(f"正在上传对象: {self.bucket}/{key} (大小: {len(body)}字节)")
            result = _check(
                self.client.putContent(self.bucket, key, content=body, headers=headers, **options.params),
                f"上传对象失败 {key}",
            )
            logger.info(f"✅ 文件上传成功: {self.bucket}/{key}")
            return self._written_record(key, body, content_type, _field(result, "etag"))
        except ProviderError as e:
            logger.error(f"❌ 文件上传失败 {self.bucket}/{key}: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 上传过程中发生错误: {str(e)}")
            return None

    def copy(self, path: str, new_path: str) -> bool:
        source = PathCodec.normalize_key(path)
        target = PathCodec.normalize_key(new_path)
        try:
            _check(
                self.client.copyObject(self.bucket, source, self.bucket, target),
                f"复制对象失败 {source}",
            )
            logger.info(f"✅ 文件复制成功: {source} → {target}")
            return True
        except ProviderError as e:
            logger.error(f"❌ 复制文件失败 {source} → {target}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 复制过程中发生错误: {str(e)}")
            return False

    def delete(self, path: str) -> bool:
        key = PathCodec.normalize_key(path)
        try:
            _check(self.client.deleteObject(self.bucket, key), f"删除对象失败 {key}")
            logger.info(f"✅ 文件删除成功: {self.bucket}/{key}")
            return True
        except ProviderError as e:
            logger.error(f"❌ 删除文件失败: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 删除过程中发生错误: {str(e)}")
            return False

    def delete_directory(self, dirname: str) -> bool:
        prefix = PathCodec.listing_prefix(dirname)
        if not prefix:
            logger.error("❌ 拒绝删除存储桶根目录")
            return False
        try:
            records = self._list(prefix, recursive=True, include_self=True)
            keys = [record.path for record in records]
            for batch in chunked(keys):
                request = DeleteObjectsRequest(quiet=True, objects=[Object(key=key) for key in batch])
                result = _check(
                    self.client.deleteObjects(self.bucket, request),
                    f"批量删除失败 {prefix}",
                )
                errors = _field(result, "error")
                if errors:
                    logger.error(f"❌ 批量删除部分失败 {prefix}: {errors}")
                    return False
            logger.info(f"✅ 目录删除成功: {self.bucket}/{prefix} (共{len(keys)}个对象)")
            return True
        except ProviderError as e:
            logger.error(f"❌ 删除目录失败 {prefix}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 删除目录时发生错误: {str(e)}")
            return False

    def get_metadata(self, path: str) -> Optional[ObjectRecord]:
        key = PathCodec.normalize_key(path)
        try:
            body = _check(self.client.getObjectMetadata(self.bucket, key), f"获取元数据失败 {key}")
        except NotFoundError:
            logger.debug(f"对象不存在: {self.bucket}/{key}")
            return None
        except ProviderError as e:
            logger.error(f"❌ {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取元数据时发生错误: {str(e)}")
            return None

        return build_record(
            key,
            size=_field(body, "contentLength"),
            timestamp=_field(body, "lastModified"),
            mimetype=_field(body, "contentType"),
            etag=_field(body, "etag"),
        )

    def get_visibility(self, path: str) -> Optional[Visibility]:
        key = PathCodec.normalize_key(path)
        try:
            acl = _check(self.client.getObjectAcl(self.bucket, key), f"获取ACL失败 {key}")
        except ProviderError as e:
            logger.error(f"❌ {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取ACL时发生错误: {str(e)}")
            return None

        for grant in _field(acl, "grants") or []:
            group = _field(_field(grant, "grantee"), "group") or ""
            if _field(grant, "permission") != PERMISSION_READ:
                continue
            if any(name in group for name in ALL_USERS_GROUPS):
                return Visibility.PUBLIC
        return Visibility.PRIVATE

    def set_visibility(self, path: str, visibility: Visibility) -> bool:
        key = PathCodec.normalize_key(path)
        visibility = Visibility(visibility)
        try:
            _check(
                self.client.setObjectAcl(self.bucket, key, aclControl=self._acl(visibility)),
                f"设置ACL失败 {key}",
            )
            logger.info(f"✅ 设置可见性成功: {key} → {visibility.value}")
            return True
        except ProviderError as e:
            logger.error(f"❌ {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 设置可见性时发生错误: {str(e)}")
            return False

    def _native_url(self, key: str) -> str:
        endpoint = self.config.endpoint.split("://", 1)[-1].strip("/")
        return f"{self.config.scheme}://{self.bucket}.{endpoint}/{PathCodec.encode_key(key)}"

    def get_url(self, path: str) -> str:
        key = PathCodec.normalize_key(path)
        return self.codec.public_url(key, self._native_url(key))

    def get_temporary_url(
        self,
        path: str,
        expiration: Expiration,
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        key = PathCodec.normalize_key(path)
        try:
            result = self.client.createSignedUrl(
                "GET",
                bucketName=self.bucket,
                objectKey=key,
                expires=expires_in(expiration),
                queryParams=dict(options or {}) or None,
            )
        except Exception as e:
            logger.error(f"❌ 生成临时URL失败 {key}: {str(e)}")
            return None
        url = _field(result, "signedUrl")
        if not url:
            logger.error(f"❌ 生成临时URL失败 {key}: 响应中没有签名URL")
            return None
        return through_cdn(self.codec, url)

    def _get_object(self, key: str, in_memory: bool) -> Any:
        return _check(
            self.client.getObject(self.bucket, key, loadStreamInMemory=in_memory),
            f"获取对象失败 {key}",
        )

    def read(self, path: str) -> Optional[bytes]:
        key = PathCodec.normalize_key(path)
        try:
            body = self._get_object(key, in_memory=True)
            return _field(body, "buffer") or b""
        except ProviderError as e:
            logger.error(f"❌ 读取文件失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 读取文件时发生错误: {str(e)}")
            return None

    def read_stream(self, path: str) -> Optional[BinaryIO]:
        key = PathCodec.normalize_key(path)
        try:
            body = self._get_object(key, in_memory=False)
            return _field(body, "response")
        except ProviderError as e:
            logger.error(f"❌ 获取文件流失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取文件流时发生错误: {str(e)}")
            return None

    def _fetch_page(self, prefix: str, delimiter: str, marker: str, max_keys: int) -> ListingPage:
        try:
            resp = self.client.listObjects(
                self.bucket,
                prefix=prefix or None,
                marker=marker or None,
                max_keys=max_keys,
                delimiter=delimiter or None,
            )
        except Exception as e:
            raise ProviderError(f"列出对象失败 '{prefix}': {e}") from e
        body = _check(resp, f"列出对象失败 '{prefix}'")

        contents = _field(body, "contents") or []
        prefixes = [_field(item, "prefix") for item in _field(body, "commonPrefixs") or []]
        entries = [
            build_record(
                _field(item, "key"),
                size=_field(item, "size"),
                timestamp=_field(item, "lastModified"),
                etag=_field(item, "etag"),
            )
            for item in contents
            if _field(item, "key")
        ]
        truncated = bool(_field(body, "is_truncated"))
        next_marker = _field(body, "next_marker")
        if truncated and not next_marker:
            candidates = [_field(item, "key") or "" for item in contents[-1:]] + prefixes[-1:]
            next_marker = max(candidates) if candidates else None
        return ListingPage(entries=entries, common_prefixes=prefixes, next_marker=next_marker, truncated=truncated)

    def _list(self, prefix: str, recursive: bool, include_self: bool = False) -> List[ObjectRecord]:
        return list_all(
            self._fetch_page,
            prefix,
            recursive=recursive,
            descend_prefixes=True,
            include_self=include_self,
            page_size=self.page_size,
        )

    def list_directory(self, directory: str = "", recursive: bool = False) -> List[ObjectRecord]:
        # 控制台生成的占位文件只在列表结果中隐藏, 删除目录时仍需看到
        records = self._list(PathCodec.listing_prefix(directory), recursive)
        return [record for record in records if record.is_dir or record.basename != CONSOLE_MARKER_NAME]
