"""Shared pytest fixtures.

Every adapter is built with an in-memory fake of its SDK client injected
through the constructor, all of them backed by the same S3-style
``InMemoryBucket`` so one set of properties can be checked per provider.
"""

from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from email.utils import formatdate
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, unquote, urlsplit

import pytest
import requests
from minio.datatypes import Object as MinioObject
from minio.error import S3Error
from qcloud_cos.cos_exception import CosServiceError

from cloudfs.infrastructure.storage.object_storage import (
    CosAdapter,
    MinIOAdapter,
    ObsAdapter,
    QiniuAdapter,
    StorageConfig,
)
from cloudfs.infrastructure.storage.object_storage import minio_adapter, qiniu_adapter

MTIME = 1700000000
PROVIDERS = ["cos", "obs", "qiniu", "minio"]


class InMemoryBucket:
    """Flat key/value bucket with S3 list semantics (marker, delimiter, max keys)."""

    def __init__(self) -> None:
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.list_calls = 0

    def put(self, key: str, body: bytes, content_type: Optional[str] = None, acl: Optional[str] = None) -> str:
        etag = f"etag-{len(body)}"
        self.objects[key] = {
            "body": bytes(body),
            "content_type": content_type or "application/octet-stream",
            "mtime": MTIME,
            "etag": etag,
            "acl": acl or "private",
        }
        return etag

    def list_page(
        self, prefix: str, delimiter: str, marker: str, max_keys: int
    ) -> Tuple[List[str], List[str], bool, Optional[str]]:
        self.list_calls += 1
        prefix = prefix or ""
        marker = marker or ""
        keys = sorted(k for k in self.objects if k.startswith(prefix) and k > marker)
        contents: List[str] = []
        prefixes: List[str] = []
        last = None
        truncated = False
        for key in keys:
            if delimiter and marker.endswith(delimiter) and key.startswith(marker):
                continue
            entry = key
            is_prefix = False
            if delimiter:
                idx = key.find(delimiter, len(prefix))
                if idx >= 0:
                    entry = key[: idx + 1]
                    is_prefix = True
                    if entry in prefixes:
                        continue
            if len(contents) + len(prefixes) >= max_keys:
                truncated = True
                break
            if is_prefix:
                prefixes.append(entry)
            else:
                contents.append(entry)
            last = entry
        return contents, prefixes, truncated, last


class FakeHttpResponse:
    def __init__(self, body: Optional[bytes], status_code: int = 200) -> None:
        self.status_code = status_code
        self.content = body or b""
        self.raw = _RawStream(self.content)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class _RawStream(io.BytesIO):
    decode_content = False


class FakeHttpSession:
    """Serves GET requests for signed/public URLs straight from the bucket."""

    def __init__(self, bucket: InMemoryBucket) -> None:
        self.bucket = bucket
        self.requested: List[str] = []

    def get(self, url: str, stream: bool = False, timeout: Any = None) -> FakeHttpResponse:
        self.requested.append(url)
        key = unquote(urlsplit(url).path).lstrip("/")
        obj = self.bucket.objects.get(key)
        if obj is None:
            return FakeHttpResponse(None, status_code=404)
        return FakeHttpResponse(obj["body"])


# Tencent COS ----------------------------------------------------------------

class FakeCosClient:
    def __init__(self, bucket: InMemoryBucket, region: str = "ap-guangzhou") -> None:
        self.bucket = bucket
        self.region = region
        self.fail_delete = False

    def _missing(self, method: str) -> CosServiceError:
        return CosServiceError(method, {"code": "NoSuchKey", "message": "The specified key does not exist."}, 404)

    def put_object(self, Bucket, Key, Body, **params):
        etag = self.bucket.put(Key, Body, params.get("ContentType"), params.get("ACL"))
        return {"ETag": f'"{etag}"'}

    def get_object(self, Bucket, Key):
        if Key not in self.bucket.objects:
            raise self._missing("GET")
        body = self.bucket.objects[Key]["body"]
        return {"Body": SimpleNamespace(get_raw_stream=lambda: io.BytesIO(body))}

    def head_object(self, Bucket, Key):
        if Key not in self.bucket.objects:
            raise self._missing("HEAD")
        obj = self.bucket.objects[Key]
        return {
            "Content-Length": str(len(obj["body"])),
            "Content-Type": obj["content_type"],
            "Last-Modified": formatdate(obj["mtime"], usegmt=True),
            "ETag": f'"{obj["etag"]}"',
        }

    def copy_object(self, Bucket, Key, CopySource):
        source = self.bucket.objects.get(CopySource["Key"])
        if source is None:
            raise self._missing("PUT")
        self.bucket.objects[Key] = dict(source)
        return {}

    def delete_object(self, Bucket, Key):
        if self.fail_delete:
            raise CosServiceError("DELETE", {"code": "AccessDenied", "message": "Access Denied."}, 403)
        self.bucket.objects.pop(Key, None)
        return {}

    def delete_objects(self, Bucket, Delete):
        for item in Delete["Object"]:
            self.bucket.objects.pop(item["Key"], None)
        return {}

    def list_objects(self, Bucket, Prefix="", Delimiter="", Marker="", MaxKeys=1000):
        contents, prefixes, truncated, last = self.bucket.list_page(Prefix, Delimiter, Marker, MaxKeys)
        response = {
            "Contents": [
                {
                    "Key": key,
                    "Size": str(len(self.bucket.objects[key]["body"])),
                    "LastModified": "2023-11-14T22:13:20.000Z",
                    "ETag": f'"{self.bucket.objects[key]["etag"]}"',
                }
                for key in contents
            ],
            "CommonPrefixes": [{"Prefix": p} for p in prefixes],
            "IsTruncated": "true" if truncated else "false",
        }
        if Delimiter and truncated:
            response["NextMarker"] = last
        return response

    def get_object_acl(self, Bucket, Key):
        if Key not in self.bucket.objects:
            raise self._missing("GET")
        grants = [{"Grantee": {"ID": "qcs::cam::uin/1:uin/1"}, "Permission": "FULL_CONTROL"}]
        if self.bucket.objects[Key]["acl"] == "public-read":
            grants.append({"Grantee": {"URI": "http://cam.qcloud.com/groups/global/AllUsers"}, "Permission": "READ"})
        return {"AccessControlList": {"Grant": grants}}

    def put_object_acl(self, Bucket, Key, ACL):
        if Key not in self.bucket.objects:
            raise self._missing("PUT")
        self.bucket.objects[Key]["acl"] = ACL
        return {}

    def get_object_url(self, Bucket, Key):
        return f"https://{Bucket}.cos.{self.region}.myqcloud.com/{quote(Key)}"

    def get_presigned_url(self, Bucket, Key, Method, Expired=300, Params=None):
        return f"https://{Bucket}.cos.{self.region}.myqcloud.com/{quote(Key)}?q-sign-time={Expired}&q-signature=abc"


# Huawei OBS -----------------------------------------------------------------

def _obs_response(status: int = 200, body: Any = None, code: Optional[str] = None) -> SimpleNamespace:
    return SimpleNamespace(
        status=status,
        body=body,
        errorCode=code,
        errorMessage=None if status < 300 else f"{code or 'Error'}",
        reason=None,
    )


class FakeObsClient:
    def __init__(self, bucket: InMemoryBucket) -> None:
        self.bucket = bucket
        self.fail_delete = False
        self.copy_calls: List[Tuple[str, str, str, str]] = []

    def putContent(self, bucketName, objectKey, content=None, headers=None, **kwargs):
        etag = self.bucket.put(
            objectKey, content, getattr(headers, "contentType", None), getattr(headers, "acl", None)
        )
        return _obs_response(body=SimpleNamespace(etag=f'"{etag}"'))

    def getObject(self, bucketName, objectKey, loadStreamInMemory=False):
        obj = self.bucket.objects.get(objectKey)
        if obj is None:
            return _obs_response(404, code="NoSuchKey")
        if loadStreamInMemory:
            return _obs_response(body=SimpleNamespace(buffer=obj["body"]))
        return _obs_response(body=SimpleNamespace(response=io.BytesIO(obj["body"])))

    def getObjectMetadata(self, bucketName, objectKey):
        obj = self.bucket.objects.get(objectKey)
        if obj is None:
            return _obs_response(404, code="NoSuchKey")
        return _obs_response(body=SimpleNamespace(
            contentLength=len(obj["body"]),
            contentType=obj["content_type"],
            lastModified=formatdate(obj["mtime"], usegmt=True),
            etag=f'"{obj["etag"]}"',
        ))

    def copyObject(self, sourceBucketName, sourceObjectKey, destBucketName, destObjectKey):
        self.copy_calls.append((sourceBucketName, sourceObjectKey, destBucketName, destObjectKey))
        source = self.bucket.objects.get(sourceObjectKey)
        if source is None:
            return _obs_response(404, code="NoSuchKey")
        self.bucket.objects[destObjectKey] = dict(source)
        return _obs_response(body=SimpleNamespace(etag=source["etag"]))

    def deleteObject(self, bucketName, objectKey):
        if self.fail_delete:
            return _obs_response(403, code="AccessDenied")
        self.bucket.objects.pop(objectKey, None)
        return _obs_response(204)

    def deleteObjects(self, bucketName, deleteObjectsRequest):
        for item in deleteObjectsRequest.objects:
            self.bucket.objects.pop(item.key, None)
        return _obs_response(body=SimpleNamespace(deleted=[], error=[]))

    def listObjects(self, bucketName, prefix=None, marker=None, max_keys=None, delimiter=None):
        contents, prefixes, truncated, last = self.bucket.list_page(
            prefix or "", delimiter or "", marker or "", max_keys or 1000
        )
        return _obs_response(body=SimpleNamespace(
            contents=[
                SimpleNamespace(
                    key=key,
                    size=len(self.bucket.objects[key]["body"]),
                    lastModified="2023/11/14 22:13:20",
                    etag=f'"{self.bucket.objects[key]["etag"]}"',
                )
                for key in contents
            ],
            commonPrefixs=[SimpleNamespace(prefix=p) for p in prefixes],
            is_truncated=truncated,
            next_marker=last if truncated else None,
        ))

    def getObjectAcl(self, bucketName, objectKey):
        obj = self.bucket.objects.get(objectKey)
        if obj is None:
            return _obs_response(404, code="NoSuchKey")
        grants = [SimpleNamespace(grantee=SimpleNamespace(grantee_id="owner", group=None), permission="FULL_CONTROL")]
        if obj["acl"] == "public-read":
            grants.append(SimpleNamespace(grantee=SimpleNamespace(grantee_id=None, group="Everyone"), permission="READ"))
        return _obs_response(body=SimpleNamespace(grants=grants))

    def setObjectAcl(self, bucketName, objectKey, aclControl=None):
        obj = self.bucket.objects.get(objectKey)
        if obj is None:
            return _obs_response(404, code="NoSuchKey")
        obj["acl"] = aclControl
        return _obs_response()

    def createSignedUrl(self, method, bucketName=None, objectKey=None, expires=300, queryParams=None):
        url = (
            f"https://{bucketName}.obs.cn-north-4.myhuaweicloud.com/{quote(objectKey)}"
            f"?AccessKeyId=ak&Expires={expires}&Signature=abc"
        )
        return SimpleNamespace(signedUrl=url, actualSignedRequestHeaders={})


# Qiniu ----------------------------------------------------------------------

class FakeQiniuInfo:
    def __init__(self, status_code: int = 200, error: Optional[str] = None) -> None:
        self.status_code = status_code
        self.error = error

    def ok(self) -> bool:
        return self.status_code // 100 == 2


class FakeQiniuAuth:
    def upload_token(self, bucket, key=None, expires=3600, policy=None):
        return f"token:{bucket}:{key}"

    def private_download_url(self, url, expires=3600):
        return f"{url}?e={expires}&token=ak:sig"


class FakeQiniuBucketManager:
    def __init__(self, bucket: InMemoryBucket) -> None:
        self.bucket = bucket
        self.fail_delete = False

    def stat(self, bucket, key):
        obj = self.bucket.objects.get(key)
        if obj is None:
            return None, FakeQiniuInfo(612, "no such file or directory")
        return {
            "fsize": len(obj["body"]),
            "hash": obj["etag"],
            "mimeType": obj["content_type"],
            "putTime": obj["mtime"] * 10 ** 7,
        }, FakeQiniuInfo()

    def copy(self, bucket, key, bucket_to, key_to, force="false"):
        source = self.bucket.objects.get(key)
        if source is None:
            return None, FakeQiniuInfo(612, "no such file or directory")
        self.bucket.objects[key_to] = dict(source)
        return {}, FakeQiniuInfo()

    def delete(self, bucket, key):
        if self.fail_delete:
            return None, FakeQiniuInfo(401, "bad token")
        if self.bucket.objects.pop(key, None) is None:
            return None, FakeQiniuInfo(612, "no such file or directory")
        return {}, FakeQiniuInfo()

    def batch(self, operations):
        results = []
        for key in operations:
            removed = self.bucket.objects.pop(key, None)
            results.append({"code": 200 if removed is not None else 612})
        return results, FakeQiniuInfo()

    def list(self, bucket, prefix=None, marker=None, limit=None, delimiter=None):
        contents, prefixes, truncated, last = self.bucket.list_page(
            prefix or "", delimiter or "", marker or "", limit or 1000
        )
        ret = {
            "items": [
                {
                    "key": key,
                    "fsize": len(self.bucket.objects[key]["body"]),
                    "hash": self.bucket.objects[key]["etag"],
                    "mimeType": self.bucket.objects[key]["content_type"],
                    "putTime": self.bucket.objects[key]["mtime"] * 10 ** 7,
                }
                for key in contents
            ],
            "commonPrefixes": prefixes,
        }
        if truncated:
            ret["marker"] = last
        return ret, not truncated, FakeQiniuInfo()


# MinIO ----------------------------------------------------------------------

def _s3_error(code: str) -> S3Error:
    return S3Error(code, code, "/resource", "request-id", "host-id", None)


class _MinioBody(io.BytesIO):
    def release_conn(self) -> None:
        pass


class FakeMinioClient:
    def __init__(self, bucket: InMemoryBucket) -> None:
        self.bucket = bucket
        self.policy: Optional[str] = None
        self.fail_delete = False
        self.put_kwargs: Dict[str, Any] = {}

    def put_object(self, bucket_name, object_name, data, length, content_type=None, sse=None, **kwargs):
        self.put_kwargs = dict(kwargs, sse=sse, content_type=content_type)
        etag = self.bucket.put(object_name, data.read(length), content_type)
        return SimpleNamespace(etag=etag, object_name=object_name)

    def get_object(self, bucket_name, object_name):
        obj = self.bucket.objects.get(object_name)
        if obj is None:
            raise _s3_error("NoSuchKey")
        return _MinioBody(obj["body"])

    def stat_object(self, bucket_name, object_name):
        obj = self.bucket.objects.get(object_name)
        if obj is None:
            raise _s3_error("NoSuchKey")
        return SimpleNamespace(
            size=len(obj["body"]),
            content_type=obj["content_type"],
            last_modified=datetime.fromtimestamp(obj["mtime"], tz=timezone.utc),
            etag=obj["etag"],
        )

    def copy_object(self, bucket_name, object_name, source):
        obj = self.bucket.objects.get(source.object_name)
        if obj is None:
            raise _s3_error("NoSuchKey")
        self.bucket.objects[object_name] = dict(obj)
        return SimpleNamespace(etag=obj["etag"])

    def remove_object(self, bucket_name, object_name):
        if self.fail_delete:
            raise _s3_error("AccessDenied")
        self.bucket.objects.pop(object_name, None)

    def remove_objects(self, bucket_name, delete_object_list):
        for name in delete_object_list:
            self.bucket.objects.pop(name, None)
        return iter([])

    def list_objects(self, bucket_name, prefix=None, recursive=False, start_after=None):
        contents, prefixes, _, _ = self.bucket.list_page(
            prefix or "", "" if recursive else "/", start_after or "", 10 ** 9
        )
        for key in contents:
            obj = self.bucket.objects[key]
            yield MinioObject(
                bucket_name,
                key,
                last_modified=datetime.fromtimestamp(obj["mtime"], tz=timezone.utc),
                etag=obj["etag"],
                size=len(obj["body"]),
            )
        for name in prefixes:
            yield MinioObject(bucket_name, name)

    def get_bucket_policy(self, bucket_name):
        if self.policy is None:
            raise _s3_error("NoSuchBucketPolicy")
        return self.policy

    def set_bucket_policy(self, bucket_name, policy):
        json.loads(policy)
        self.policy = policy

    def delete_bucket_policy(self, bucket_name):
        self.policy = None

    def presigned_get_object(self, bucket_name, object_name, expires=None, extra_query_params=None):
        seconds = int(expires.total_seconds())
        return (
            f"http://localhost:9000/{bucket_name}/{quote(object_name)}"
            f"?X-Amz-Expires={seconds}&X-Amz-Signature=abc"
        )


# Fixtures -------------------------------------------------------------------

@pytest.fixture
def memory_bucket() -> InMemoryBucket:
    return InMemoryBucket()


@pytest.fixture
def http_session(memory_bucket: InMemoryBucket) -> FakeHttpSession:
    return FakeHttpSession(memory_bucket)


@pytest.fixture
def make_storage(memory_bucket: InMemoryBucket, http_session: FakeHttpSession, monkeypatch):
    """Build an adapter for a driver on top of the shared in-memory bucket."""

    def put_data(up_token, key, data, params=None, mime_type="application/octet-stream", **kwargs):
        etag = memory_bucket.put(key, data, mime_type)
        return {"key": key, "hash": etag}, FakeQiniuInfo()

    monkeypatch.setattr(qiniu_adapter, "put_data", put_data)
    monkeypatch.setattr(qiniu_adapter, "build_batch_delete", lambda bucket, keys: list(keys))
    monkeypatch.setattr(minio_adapter, "DeleteObject", lambda name: name)

    defaults = {
        "cos": {"region": "ap-guangzhou"},
        "obs": {"endpoint": "obs.cn-north-4.myhuaweicloud.com"},
        "qiniu": {"domain": "cdn.example.com"},
        "minio": {"endpoint": "localhost:9000"},
    }

    def factory(driver: str, page_size: int = 1000, **overrides: Any):
        config = StorageConfig(**{"bucket": "test-bucket", **defaults[driver], **overrides})
        if driver == "cos":
            return CosAdapter(
                config, client=FakeCosClient(memory_bucket), http_session=http_session, page_size=page_size
            )
        if driver == "obs":
            return ObsAdapter(config, client=FakeObsClient(memory_bucket), page_size=page_size)
        if driver == "qiniu":
            return QiniuAdapter(
                config,
                auth=FakeQiniuAuth(),
                bucket_manager=FakeQiniuBucketManager(memory_bucket),
                http_session=http_session,
                page_size=page_size,
            )
        return MinIOAdapter(config, client=FakeMinioClient(memory_bucket), page_size=page_size)

    return factory


@pytest.fixture(params=PROVIDERS)
def storage(request, make_storage):
    return make_storage(request.param)
