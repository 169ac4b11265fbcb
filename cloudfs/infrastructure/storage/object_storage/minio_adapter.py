"""
MinIO Object Storage Adapter

Implements ObjectStorageInterface for MinIO (and other S3-compatible
gateways). This adapter wraps the MinIO client to provide a consistent interface.
"""

import io
import json
import logging
from datetime import timedelta
from typing import Any, BinaryIO, Dict, List, Optional

from minio import Minio
from minio.commonconfig import CopySource
from minio.deleteobjects import DeleteObject
from minio.error import S3Error
from minio.sse import SseS3

from ...exceptions import ProviderError
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

NOT_FOUND_CODES = ("NoSuchKey", "NoSuchObject", "ResourceNotFound")
NO_POLICY_CODE = "NoSuchBucketPolicy"
POLICY_VERSION = "2012-10-17"
READ_ACTION = "s3:GetObject"


def _is_anonymous(statement: Dict[str, Any]) -> bool:
    principal = statement.get("Principal")
    if principal == "*":
        return True
    aws = (principal or {}).get("AWS") if isinstance(principal, dict) else None
    return aws == "*" or (isinstance(aws, list) and "*" in aws)


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class MinIOAdapter(ObjectStorageInterface):
    """
    MinIO implementation of ObjectStorageInterface

    MinIO has no per-object ACL; visibility is kept as anonymous
    s3:GetObject statements in the bucket policy.
    """

    def __init__(
        self,
        config: StorageConfig,
        client: Optional[Minio] = None,
        page_size: int = DEFAULT_PAGE_SIZE
    ):
        config.require("bucket", "endpoint")
        if client is None:
            config.require("access_key", "secret_key")
        super().__init__(config)
        self.bucket = config.bucket
        self.codec = PathCodec(config.domain, config.scheme)
        self.page_size = page_size
        self.endpoint = config.endpoint.split("://", 1)[-1].strip("/")
        self.client = client or Minio(
            endpoint=self.endpoint,
            access_key=config.access_key,
            secret_key=config.secret_key,
            session_token=config.token,
            secure=config.scheme == "https",
            region=config.region
        )

    def write(
        self,
        path: str,
        contents: Contents,
        options: Optional[UploadOptions] = None
    ) -> Optional[ObjectRecord]:
        """Upload contents to MinIO"""
        options = self._resolve_options(options)
        key = PathCodec.normalize_key(path)
        body = self._to_bytes(contents)
        content_type = self._content_type(key, options)
        try:
            logger.debug(f"正在上传对象: {self.bucket}/{key} (大小: {len(body)}字节)")
            result = self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=io.BytesIO(body),
                length=len(body),
                content_type=content_type,
                sse=SseS3() if self._should_encrypt(options) else None,
                **options.params
            )
            logger.info(f"✅ 文件上传成功: {self.bucket}/{key}")
        except S3Error as e:
            logger.error(f"❌ 文件上传失败 {self.bucket}/{key}: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 上传过程中发生错误: {str(e)}")
            return None

        if options.visibility is not None and not self.set_visibility(key, options.visibility):
            logger.warning(f"文件已上传但可见性设置失败: {self.bucket}/{key}")
        return self._written_record(key, body, content_type, getattr(result, "etag", None))

    def copy(self, path: str, new_path: str) -> bool:
        source = PathCodec.normalize_key(path)
        target = PathCodec.normalize_key(new_path)
        try:
            self.client.copy_object(
                bucket_name=self.bucket,
                object_name=target,
                source=CopySource(self.bucket, source)
            )
            logger.info(f"✅ 文件复制成功: {source} → {target}")
            return True
        except S3Error as e:
            logger.error(f"❌ 复制文件失败 {source} → {target}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 复制过程中发生错误: {str(e)}")
            return False

    def delete(self, path: str) -> bool:
        key = PathCodec.normalize_key(path)
        try:
            logger.debug(f"正在删除文件: {self.bucket}/{key}")
            self.client.remove_object(bucket_name=self.bucket, object_name=key)
            logger.info(f"✅ 文件删除成功: {self.bucket}/{key}")
            return True
        except S3Error as e:
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
                # remove_objects is lazy; errors only surface while iterating
                errors = list(self.client.remove_objects(
                    bucket_name=self.bucket,
                    delete_object_list=[DeleteObject(key) for key in batch]
                ))
                if errors:
                    logger.error(f"❌ 批量删除部分失败 {prefix}: {errors}")
                    return False
            logger.info(f"✅ 目录删除成功: {self.bucket}/{prefix} (共{len(keys)}个对象)")
            return True
        except (ProviderError, S3Error) as e:
            logger.error(f"❌ 删除目录失败 {prefix}: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 删除目录时发生错误: {str(e)}")
            return False

    def get_metadata(self, path: str) -> Optional[ObjectRecord]:
        key = PathCodec.normalize_key(path)
        try:
            stat = self.client.stat_object(bucket_name=self.bucket, object_name=key)
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                logger.debug(f"对象不存在: {self.bucket}/{key}")
            else:
                logger.error(f"❌ 获取文件元数据失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取元数据时发生错误: {str(e)}")
            return None

        return build_record(
            key,
            size=stat.size,
            timestamp=stat.last_modified,
            mimetype=stat.content_type,
            etag=stat.etag
        )

    def _resource(self, key: str) -> str:
        return f"arn:aws:s3:::{self.bucket}/{key}"

    def _load_policy(self) -> Dict[str, Any]:
        try:
            return json.loads(self.client.get_bucket_policy(bucket_name=self.bucket))
        except S3Error as e:
            if e.code == NO_POLICY_CODE:
                return {"Version": POLICY_VERSION, "Statement": []}
            raise

    def _grants_read(self, statement: Dict[str, Any], key: str) -> bool:
        if statement.get("Effect") != "Allow" or not _is_anonymous(statement):
            return False
        actions = _as_list(statement.get("Action"))
        if READ_ACTION not in actions and "s3:*" not in actions:
            return False
        resources = _as_list(statement.get("Resource"))
        return self._resource(key) in resources or self._resource("*") in resources

    def get_visibility(self, path: str) -> Optional[Visibility]:
        key = PathCodec.normalize_key(path)
        try:
            policy = self._load_policy()
        except S3Error as e:
            logger.error(f"❌ 获取存储桶策略失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取可见性时发生错误: {str(e)}")
            return None

        for statement in _as_list(policy.get("Statement")):
            if self._grants_read(statement, key):
                return Visibility.PUBLIC
        return Visibility.PRIVATE

    def set_visibility(self, path: str, visibility: Visibility) -> bool:
        """Add or remove an anonymous read statement for this key"""
        key = PathCodec.normalize_key(path)
        visibility = Visibility(visibility)
        resource = self._resource(key)
        try:
            policy = self._load_policy()
            statements = []
            for statement in _as_list(policy.get("Statement")):
                if self._grants_read(statement, key) and resource in _as_list(statement.get("Resource")):
                    remaining = [r for r in _as_list(statement["Resource"]) if r != resource]
                    if not remaining:
                        continue
                    statement = dict(statement, Resource=remaining)
                statements.append(statement)

            if visibility == Visibility.PUBLIC:
                statements.append({
                    "Effect": "Allow",
                    "Principal": {"AWS": ["*"]},
                    "Action": [READ_ACTION],
                    "Resource": [resource]
                })

            if statements:
                policy["Statement"] = statements
                self.client.set_bucket_policy(bucket_name=self.bucket, policy=json.dumps(policy))
            else:
                self.client.delete_bucket_policy(bucket_name=self.bucket)
            logger.info(f"✅ 设置可见性成功: {key} → {visibility.value}")
            return True
        except S3Error as e:
            logger.error(f"❌ 设置存储桶策略失败: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ 设置可见性时发生错误: {str(e)}")
            return False

    def get_url(self, path: str) -> str:
        key = PathCodec.normalize_key(path)
        native = f"{self.config.scheme}://{self.endpoint}/{self.bucket}/{PathCodec.encode_key(key)}"
        return self.codec.public_url(key, native)

    def get_temporary_url(
        self,
        path: str,
        expiration: Expiration,
        options: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Generate presigned URL for file access"""
        key = PathCodec.normalize_key(path)
        expires_delta = timedelta(seconds=expires_in(expiration))
        try:
            url = self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=expires_delta,
                extra_query_params=dict(options) if options else None
            )
        except S3Error as e:
            logger.error(f"❌ 生成URL失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 生成URL时发生错误: {str(e)}")
            return None

        logger.debug(f"生成临时URL: {self.bucket}/{key} (过期时间: {expires_delta})")
        return through_cdn(self.codec, url)

    def read(self, path: str) -> Optional[bytes]:
        key = PathCodec.normalize_key(path)
        response = None
        try:
            response = self.client.get_object(bucket_name=self.bucket, object_name=key)
            return response.read()
        except S3Error as e:
            logger.error(f"❌ 读取文件失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 读取文件时发生错误: {str(e)}")
            return None
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def read_stream(self, path: str) -> Optional[BinaryIO]:
        """Get file as a stream; the caller closes it"""
        key = PathCodec.normalize_key(path)
        try:
            logger.debug(f"正在获取文件流: {self.bucket}/{key}")
            return self.client.get_object(bucket_name=self.bucket, object_name=key)
        except S3Error as e:
            logger.error(f"❌ 获取文件失败: {e}")
            return None
        except Exception as e:
            logger.error(f"❌ 获取文件流时发生错误: {str(e)}")
            return None

    def _fetch_page(self, prefix: str, delimiter: str, marker: str, max_keys: int) -> ListingPage:
        """
        The SDK generator follows continuation tokens itself, so the whole
        prefix comes back as one logical page. max_keys and page_size are
        not used here.

        The SDK reports every name ending in "/" as is_dir, placeholder
        objects included; only entries without an etag are common prefixes.
        """
        try:
            objects = list(self.client.list_objects(
                self.bucket,
                prefix=prefix or None,
                recursive=not delimiter,
                start_after=marker or None
            ))
        except S3Error as e:
            raise ProviderError(f"列出对象失败 '{prefix}': {e}", code=e.code) from e
        except Exception as e:
            raise ProviderError(f"列出对象失败 '{prefix}': {e}") from e

        entries = []
        prefixes = []
        for obj in objects:
            if delimiter and obj.is_dir and getattr(obj, "etag", None) is None:
                prefixes.append(obj.object_name)
                continue
            entries.append(build_record(
                obj.object_name,
                size=obj.size,
                timestamp=obj.last_modified,
                etag=getattr(obj, "etag", None)
            ))
        return ListingPage(entries=entries, common_prefixes=prefixes)

    def _list(self, prefix: str, recursive: bool, include_self: bool = False) -> List[ObjectRecord]:
        return list_all(
            self._fetch_page,
            prefix,
            recursive=recursive,
            include_self=include_self,
            page_size=self.page_size
        )

    def list_directory(self, directory: str = "", recursive: bool = False) -> List[ObjectRecord]:
        return self._list(PathCodec.listing_prefix(directory), recursive)
