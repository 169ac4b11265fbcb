"""
Object Storage Factory

Creates appropriate storage adapters based on configuration.
"""

import logging
from typing import Dict, List, Optional, Type

from cloudfs.core.config import settings
from ...exceptions import ConfigurationError
from .base import ObjectStorageInterface
from .cos_adapter import CosAdapter
from .minio_adapter import MinIOAdapter
from .models import StorageConfig
from .obs_adapter import ObsAdapter
from .qiniu_adapter import QiniuAdapter

logger = logging.getLogger(__name__)


class StorageFactory:
    """Factory for creating object storage instances"""

    _adapters: Dict[str, Type[ObjectStorageInterface]] = {
        "cos": CosAdapter,
        "obs": ObsAdapter,
        "qiniu": QiniuAdapter,
        "minio": MinIOAdapter,
    }

    @classmethod
    def create_storage(
        cls,
        driver: Optional[str] = None,
        config: Optional[StorageConfig] = None,
        **clients
    ) -> ObjectStorageInterface:
        """
        Create object storage instance based on driver

        Args:
            driver: Driver name ("cos", "obs", "qiniu", "minio"); defaults to
                settings.FILESYSTEM_DRIVER
            config: Optional custom configuration; read from settings when omitted
            **clients: Pre-built SDK clients passed through to the adapter

        Returns:
            ObjectStorageInterface implementation

        Raises:
            ConfigurationError: unknown driver or incomplete configuration
        """
        driver = (driver or settings.FILESYSTEM_DRIVER).lower()
        if driver not in cls._adapters:
            raise ConfigurationError(f"不支持的存储驱动: {driver}")

        if config is None:
            config = settings.storage_config(driver)

        adapter = cls._adapters[driver](config, **clients)
        logger.debug(f"创建存储适配器: {driver} (bucket: {config.bucket})")
        return adapter

    @classmethod
    def register_adapter(cls, name: str, adapter_class: Type[ObjectStorageInterface]):
        """
        Register a new driver

        Args:
            name: Driver name
            adapter_class: Class implementing ObjectStorageInterface
        """
        if not isinstance(adapter_class, type) or not issubclass(adapter_class, ObjectStorageInterface):
            raise ConfigurationError("适配器类必须实现ObjectStorageInterface接口")

        cls._adapters[name.lower()] = adapter_class
        logger.info(f"注册存储适配器: {name}")

    @classmethod
    def get_supported_adapters(cls) -> List[str]:
        """获取支持的驱动列表"""
        return list(cls._adapters.keys())

    @classmethod
    def get_default_storage(cls) -> ObjectStorageInterface:
        """Get storage for the configured default driver"""
        return cls.create_storage()
