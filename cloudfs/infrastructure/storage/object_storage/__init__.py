"""
Object Storage Infrastructure Module

Provides a filesystem interface over Tencent COS, Huawei OBS, Qiniu and MinIO.
"""

from .base import ObjectStorageInterface
from .models import ObjectRecord, StorageConfig, UploadOptions, Visibility
from .cos_adapter import CosAdapter
from .obs_adapter import ObsAdapter
from .qiniu_adapter import QiniuAdapter
from .minio_adapter import MinIOAdapter
from .factory import StorageFactory

__all__ = [
    'ObjectStorageInterface',
    'ObjectRecord',
    'StorageConfig',
    'UploadOptions',
    'Visibility',
    'CosAdapter',
    'ObsAdapter',
    'QiniuAdapter',
    'MinIOAdapter',
    'StorageFactory'
]
