"""
Storage Infrastructure Module

Provides the object storage adapters and their factory.
"""

from .object_storage import (
    ObjectStorageInterface,
    StorageConfig,
    StorageFactory,
)

__all__ = [
    'ObjectStorageInterface',
    'StorageConfig',
    'StorageFactory'
]
