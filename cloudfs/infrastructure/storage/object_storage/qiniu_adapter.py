"""
Qiniu Kodo Object Storage Adapter

Implements ObjectStorageInterface on top of the qiniu SDK. Kodo has no
per-object ACL and no API that returns object bodies, so reads go over
HTTP through the bound domain.
"""

import logging
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import requests
from qiniu import Auth, BucketManager, build_batch_delete, put_data

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
from .url_signer import READ_URL_TTL, download, expires_in

logger = logging.getLogger(__name__)

# Kodo answers 612 for "no such file or directory"
STATUS_NOT_FOUND = (404, 612)
# putTime is reported in units of 100 nanoseconds
PUT_TIME_UNITS_PER_SECOND = 10 ** 7


def _check(result: Tuple[Any, Any], action: str) -> Any:
    """
    Raise ProviderError unless a (ret, info) pair is a success

    Returns:
        The decoded response body
    """
    ret, info = result
    if info is not None and info.ok():
        return ret
    status = getattr(info, "status_code", None)
    error_cls = NotFoundError if status in STATUS_NOT_FOUND else ProviderError
    raise error_cls(f"{action}: {getattr(info, 'error', None) or 'unknown error'}", status=status)


class QiniuAdapter(ObjectStorageInterface):
    """Qiniu Kodo implementation of ObjectStorageInterface"""

    def __init__(
        self,
        config: StorageConfig,
        auth: Optional[Auth] = None,
        bucket_manager: Optional[BucketManager] = None,
        http_session: Optional[requests.Session] = None,
        page_size: int = DEFAULT_PAGE_SIZE
    ):
        config.require("bucket", "domain")
        if auth is None:
            config.require("access_key", "secret_key")
        super().__init__(config)
        self.bucket = config.bucket
        self.codec = PathCodec(config.domain, config.scheme)
        self.page_size = page_size
        self.auth = auth or Auth(config.access_key, config.secret_key)
        self.bucket_manager = bucket_manager or BucketManager(self.auth)
        self.http = http_session or requests.Session()

    def write(
        self,
        path: str,
        contents: Contents,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """Upload contents with a token scoped to this key, so existing objects are overwritten"""
        options = self._resolve_options(options)
        key = PathCodec.normalize_key(path)
        body = self._to_bytes(contents)
        mimetype = self._content_type(key, options)
        if options.visibility is not None:
            logger.debug(f"七牛不支持对象级ACL，忽略可见性设置: {key}")
        try:
            token = self.auth.upload_token(self.bucket, key)
            logger.debug(f"正在上传对象: {self.bucket}/{key} (大小: {len(body)}字节)")
            ret = _check(
                put_data(token, key, body, params=options.params or None, mime_type=mimetype),
                f"上传对象失败 {key}",
            )
            logger.info(f"✅ 文件上传成功: {self.bucket}/{key}")
            return self._written_record(key, body, mimetype, (ret or {}).get("hash"))
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
                self.bucket_manager.copy(self.bucket, source, self.bucket, target, force="true"),
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
            _check(self.bucket_manager.delete(self.bucket, key), f"删除对象失败 {key}")
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
                ret = _check(
                    self.bucket_manager.batch(build_batch_delete(self.bucket, batch)),
                    f"批量删除失败 {prefix}",
                )
                failed = [
                    key for key, item in zip(batch, ret or [])
                    if item.get("code") not in (200,) + STATUS_NOT_FOUND
                ]
                if failed:
                    logger.error(f"❌ 批量删除部分失败 {prefix}: {failed}")
                    return False
            logger.info(f"✅ 目录删除成功: {self.bucket}/{prefix} (共{len(keys)}个对象)")
            return True
        except ProviderError as e:
            logger.error(f"❌ 删除目录失败 {prefix}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 删除目录时发生错误: {str(e)}")
            return False

    @staticmethod
    def _normalize_item(key: str, item: Dict[str, Any]) -> ObjectRecord:
        put_time = item.get("putTime")
        return build_record(
            key,
            size=item.get("fsize"),
            timestamp=put_time // PUT_TIME_UNITS_PER_SECOND if put_time is not None else None,
            mimetype=item.get("mimeType"),
            etag=item.get("hash"),
        )

    def get_metadata(self, path: str) -> Optional[ObjectRecord]:
        key = PathCodec.normalize_key(path)
        try:
            ret = _check(self.bucket_manager.stat(self.bucket, key), f"获取元数据失败 {key}")
        except NotFoundError:
            logger.debug(f"对象不存在: {self.bucket}/{key}")
            return None
        except ProviderError as e:
            logger.error(f"❌ {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取元数据时发生错误: {str(e)}")
            return None
        return self._normalize_item(key, ret or {})

    def get_visibility(self, path: str) -> Optional[Visibility]:
        logger.debug(f"七牛不支持对象级ACL: {path}")
        return None

    def set_visibility(self, path: str, visibility: Visibility) -> bool:
        logger.warning(f"七牛不支持对象级ACL，无法设置可见性: {path}")
        return False

    def get_url(self, path: str) -> str:
        return f"{self.codec.host}/{PathCodec.encode_key(PathCodec.normalize_key(path))}"

    def get_temporary_url(
        self,
        path: str,
        expiration: Expiration,
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        key = PathCodec.normalize_key(path)
        try:
            # The base URL is already on the bound domain and the token signs it verbatim
            return self.auth.private_download_url(self.get_url(key), expires=expires_in(expiration))
        except Exception as e:
            logger.error(f"❌ 生成临时URL失败 {key}: {str(e)}")
            return None

    def _http_timeout(self):
        return (self.config.connect_timeout, self.config.timeout)

    def _read_url(self, key: str) -> Optional[str]:
        # A signed URL works for both public and private buckets
        return self.get_temporary_url(key, READ_URL_TTL)

    def read(self, path: str) -> Optional[bytes]:
        key = PathCodec.normalize_key(path)
        url = self._read_url(key)
        if url is None:
            return None
        try:
            return download(self.http, url, self._http_timeout())
        except ProviderError as e:
            logger.error(f"❌ 读取文件失败 {key}: {e}")
            return None

    def read_stream(self, path: str) -> Optional[BinaryIO]:
        key = PathCodec.normalize_key(path)
        url = self._read_url(key)
        if url is None:
            return None
        try:
            return download(self.http, url, self._http_timeout(), stream=True)
        except ProviderError as e:
            logger.error(f"❌ 获取文件流失败 {key}: {e}")
            return None

    def _fetch_page(self, prefix: str, delimiter: str, marker: str, max_keys: int) -> ListingPage:
        try:
            ret, eof, info = self.bucket_manager.list(
                self.bucket,
                prefix=prefix or None,
                marker=marker or None,
                limit=max_keys,
                delimiter=delimiter or None,
            )
        except Exception as e:
            raise ProviderError(f"列出对象失败 '{prefix}': {e}") from e
        ret = _check((ret, info), f"列出对象失败 '{prefix}'") or {}

        entries = [self._normalize_item(item["key"], item) for item in ret.get("items") or []]
        return ListingPage(
            entries=entries,
            common_prefixes=list(ret.get("commonPrefixes") or []),
            next_marker=ret.get("marker") or None,
            truncated=not eof,
        )

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
