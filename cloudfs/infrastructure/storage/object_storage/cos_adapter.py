"""
Tencent Cloud COS Object Storage Adapter

Implements ObjectStorageInterface on top of cos-python-sdk-v5.
"""

import logging
from typing import Any, BinaryIO, Dict, List, Optional

import requests
from qcloud_cos import CosConfig, CosS3Client
from qcloud_cos.cos_exception import CosException, CosServiceError

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
from .url_signer import READ_URL_TTL, download, expires_in, through_cdn

logger = logging.getLogger(__name__)

ACL_PUBLIC_READ = "public-read"
ACL_PRIVATE = "private"
ALL_USERS_URI = "global/AllUsers"
PERMISSION_READ = "READ"


def _as_list(value: Any) -> List[Any]:
    """COS XML responses hold a dict instead of a list when there is one item"""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class CosAdapter(ObjectStorageInterface):
    """
    Tencent COS implementation of ObjectStorageInterface

    COS bucket names carry the account APPID ("name-1250000000"); the APPID
    is appended from the configuration when the bucket does not have it yet.
    """

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[CosS3Client] = None,
        http_session: Optional[requests.Session] = None,
        page_size: int = DEFAULT_PAGE_SIZE
    ):
        config.require("bucket", "region")
        if client is None:
            config.require("access_key", "secret_key")
        super().__init__(config)
        self.codec = PathCodec(config.domain, config.scheme)
        self.page_size = page_size
        self.http = http_session or requests.Session()
        self.client = client or CosS3Client(CosConfig(
            Region=config.region,
            SecretId=config.access_key,
            SecretKey=config.secret_key,
            Token=config.token,
            Scheme=config.scheme,
            Timeout=config.timeout,
            Endpoint=config.endpoint,
        ))

    @property
    def bucket(self) -> str:
        bucket = self.config.bucket
        app_id = self.config.app_id
        if app_id and not bucket.endswith(f"-{app_id}"):
            return f"{bucket}-{app_id}"
        return bucket

    @staticmethod
    def _provider_error(e: CosException, action: str) -> ProviderError:
        if isinstance(e, CosServiceError):
            status = e.get_status_code()
            error_cls = NotFoundError if status == 404 else ProviderError
            return error_cls(f"{action}: {e.get_error_msg()}", code=e.get_error_code(), status=status)
        return ProviderError(f"{action}: {e}")

    def _upload_params(self, path: str, options: UploadOptions) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(options.params)
        params["ContentType"] = self._content_type(path, options)
        if self._should_encrypt(options):
            params["ServerSideEncryption"] = "AES256"
        if options.visibility is not None:
            params["ACL"] = self._acl(options.visibility)
        return params

    @staticmethod
    def _acl(visibility: Visibility) -> str:
        return ACL_PUBLIC_READ if visibility == Visibility.PUBLIC else ACL_PRIVATE

    def write(
        self,
        path: str,
        contents: Contents,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """Upload contents to COS"""
        options = self._resolve_options(options)
        key = PathCodec.normalize_key(path)
        body = self._to_bytes(contents)
        params = self._upload_params(key, options)
        try:
            logger.debug(f"正在上传对象: {self.bucket}/{key} (大小: {len(body)}字节)")
            response = self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **params)
            logger.info(f"✅ 文件上传成功: {self.bucket}/{key}")
            return self._written_record(key, body, params["ContentType"], (response or {}).get("ETag"))
        except CosException as e:
            logger.error(f"❌ 文件上传失败 {self.bucket}/{key}: {e}")
            return None

    def copy(self, path: str, new_path: str) -> bool:
        source = PathCodec.normalize_key(path)
        target = PathCodec.normalize_key(new_path)
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=target,
                CopySource={"Bucket": self.bucket, "Key": source, "Region": self.config.region},
            )
            logger.info(f"✅ 文件复制成功: {source} → {target}")
            return True
        except CosException as e:
            logger.error(f"❌ 复制文件失败 {source} → {target}: {e}")
            return False

    def delete(self, path: str) -> bool:
        key = PathCodec.normalize_key(path)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            logger.info(f"✅ 文件删除成功: {self.bucket}/{key}")
            return True
        except CosException as e:
            logger.error(f"❌ 删除文件失败 {self.bucket}/{key}: {e}")
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
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Object": [{"Key": key} for key in batch], "Quiet": "true"},
                )
                errors = _as_list((response or {}).get("Error"))
                if errors:
                    logger.error(f"❌ 批量删除部分失败 {prefix}: {errors}")
                    return False
            logger.info(f"✅ 目录删除成功: {self.bucket}/{prefix} (共{len(keys)}个对象)")
            return True
        except (ProviderError, CosException) as e:
            logger.error(f"❌ 删除目录失败 {prefix}: {e}")
            return False

    def get_metadata(self, path: str) -> Optional[ObjectRecord]:
        key = PathCodec.normalize_key(path)
        try:
            headers = self.client.head_object(Bucket=self.bucket, Key=key)
        except CosException as e:
            error = self._provider_error(e, f"获取元数据失败 {key}")
            if isinstance(error, NotFoundError):
                logger.debug(f"对象不存在: {self.bucket}/{key}")
            else:
                logger.error(f"❌ {error}")
            return None
        return build_record(
            key,
            size=headers.get("Content-Length"),
            timestamp=headers.get("Last-Modified"),
            mimetype=headers.get("Content-Type"),
            etag=headers.get("ETag"),
        )

    def get_visibility(self, path: str) -> Optional[Visibility]:
        key = PathCodec.normalize_key(path)
        try:
            response = self.client.get_object_acl(Bucket=self.bucket, Key=key)
        except CosException as e:
            logger.error(f"❌ 获取ACL失败 {key}: {e}")
            return None

        acl = response.get("AccessControlList") or {}
        for grant in _as_list(acl.get("Grant")):
            grantee = grant.get("Grantee") or {}
            if ALL_USERS_URI in (grantee.get("URI") or "") and grant.get("Permission") == PERMISSION_READ:
                return Visibility.PUBLIC
        return Visibility.PRIVATE

    def set_visibility(self, path: str, visibility: Visibility) -> bool:
        key = PathCodec.normalize_key(path)
        try:
            self.client.put_object_acl(Bucket=self.bucket, Key=key, ACL=self._acl(Visibility(visibility)))
            logger.info(f"✅ 设置可见性成功: {key} → {Visibility(visibility).value}")
            return True
        except CosException as e:
            logger.error(f"❌ 设置可见性失败 {key}: {e}")
            return False

    def get_url(self, path: str) -> str:
        key = PathCodec.normalize_key(path)
        if self.codec.has_domain:
            return self.codec.apply_prefix(key)
        return self.client.get_object_url(Bucket=self.bucket, Key=key)

    def get_temporary_url(
        self,
        path: str,
        expiration: Expiration,
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        key = PathCodec.normalize_key(path)
        try:
            url = self.client.get_presigned_url(
                Bucket=self.bucket,
                Key=key,
                Method="GET",
                Expired=expires_in(expiration),
                Params=dict(options or {}),
            )
        except CosException as e:
            logger.error(f"❌ 生成临时URL失败 {key}: {e}")
            return None
        logger.debug(f"生成临时URL: {self.bucket}/{key}")
        return through_cdn(self.codec, url)

    def _http_timeout(self):
        return (self.config.connect_timeout, self.config.timeout)

    def read(self, path: str) -> Optional[bytes]:
        key = PathCodec.normalize_key(path)
        try:
            if self.config.read_from_cdn:
                url = self.get_temporary_url(key, READ_URL_TTL)
                if url is None:
                    return None
                return download(self.http, url, self._http_timeout())
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].get_raw_stream().read()
        except (ProviderError, CosException) as e:
            logger.error(f"❌ 读取文件失败 {key}: {e}")
            return None

    def read_stream(self, path: str) -> Optional[BinaryIO]:
        """Stream the object over HTTP through a short-lived signed URL"""
        key = PathCodec.normalize_key(path)
        url = self.get_temporary_url(key, READ_URL_TTL)
        if url is None:
            return None
        try:
            return download(self.http, url, self._http_timeout(), stream=True)
        except ProviderError as e:
            logger.error(f"❌ 获取文件流失败 {key}: {e}")
            return None

    def _fetch_page(self, prefix: str, delimiter: str, marker: str, max_keys: int) -> ListingPage:
        try:
            response = self.client.list_objects(
                Bucket=self.bucket,
                Prefix=prefix,
                Delimiter=delimiter,
                Marker=marker,
                MaxKeys=max_keys,
            )
        except CosException as e:
            raise self._provider_error(e, f"列出对象失败 '{prefix}'") from e

        contents = _as_list(response.get("Contents"))
        prefixes = [item["Prefix"] for item in _as_list(response.get("CommonPrefixes"))]
        entries = [
            build_record(
                item["Key"],
                size=item.get("Size"),
                timestamp=item.get("LastModified"),
                etag=item.get("ETag"),
            )
            for item in contents
        ]
        truncated = str(response.get("IsTruncated", "false")).lower() == "true"
        # NextMarker is only returned for delimiter listings
        next_marker = response.get("NextMarker")
        if truncated and not next_marker:
            candidates = [item["Key"] for item in contents[-1:]] + prefixes[-1:]
            next_marker = max(candidates) if candidates else None
        return ListingPage(entries=entries, common_prefixes=prefixes, next_marker=next_marker, truncated=truncated)

    def _list(self, prefix: str, recursive: bool, include_self: bool = False) -> List[ObjectRecord]:
        return list_all(
            self._fetch_page,
            prefix,
            recursive=recursive,
            include_self=include_self,
            page_size=self.page_size,
        )

    def list_directory(self, directory: str = "", recursive: bool = False) -> List[ObjectRecord]:
        return self._list(PathCodec.listing_prefix(directory), recursive)
