import os
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

from cloudfs.infrastructure.exceptions import ConfigurationError

project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
env_path = os.path.join(project_root, '.env')
load_dotenv(env_path)

# StorageConfig field -> settings suffix
_STORAGE_FIELDS = {
    "bucket": "BUCKET",
    "access_key": "ACCESS_KEY",
    "secret_key": "SECRET_KEY",
    "region": "REGION",
    "endpoint": "ENDPOINT",
    "app_id": "APP_ID",
    "token": "TOKEN",
    "domain": "DOMAIN",
    "scheme": "SCHEME",
    "encrypt": "ENCRYPT",
    "read_from_cdn": "READ_FROM_CDN",
}


class Settings(BaseSettings):
    # 默认存储驱动: cos, obs, qiniu, minio
    FILESYSTEM_DRIVER: str = "cos"

    # 日志设置
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # 请求超时(秒)
    STORAGE_TIMEOUT: int = 60
    STORAGE_CONNECT_TIMEOUT: int = 60

    # 腾讯云COS配置
    COS_BUCKET: str = ""
    COS_ACCESS_KEY: str = ""
    COS_SECRET_KEY: str = ""
    COS_REGION: Optional[str] = None
    COS_ENDPOINT: Optional[str] = None
    COS_APP_ID: Optional[str] = None
    COS_TOKEN: Optional[str] = None
    COS_DOMAIN: Optional[str] = None
    COS_SCHEME: str = "http"
    COS_ENCRYPT: bool = False
    COS_READ_FROM_CDN: bool = False

    # 华为云OBS配置
    OBS_BUCKET: str = ""
    OBS_ACCESS_KEY: str = ""
    OBS_SECRET_KEY: str = ""
    OBS_REGION: Optional[str] = None
    OBS_ENDPOINT: Optional[str] = None
    OBS_APP_ID: Optional[str] = None
    OBS_TOKEN: Optional[str] = None
    OBS_DOMAIN: Optional[str] = None
    OBS_SCHEME: str = "http"
    OBS_ENCRYPT: bool = False
    OBS_READ_FROM_CDN: bool = False

    # 七牛云配置
    QINIU_BUCKET: str = ""
    QINIU_ACCESS_KEY: str = ""
    QINIU_SECRET_KEY: str = ""
    QINIU_REGION: Optional[str] = None
    QINIU_ENDPOINT: Optional[str] = None
    QINIU_APP_ID: Optional[str] = None
    QINIU_TOKEN: Optional[str] = None
    QINIU_DOMAIN: Optional[str] = None
    QINIU_SCHEME: str = "http"
    QINIU_ENCRYPT: bool = False
    QINIU_READ_FROM_CDN: bool = False

    # MinIO配置
    MINIO_BUCKET: str = ""
    MINIO_ACCESS_KEY: str = ""
    MINIO_SECRET_KEY: str = ""
    MINIO_REGION: Optional[str] = None
    MINIO_ENDPOINT: Optional[str] = "localhost:9000"
    MINIO_APP_ID: Optional[str] = None
    MINIO_TOKEN: Optional[str] = None
    MINIO_DOMAIN: Optional[str] = None
    MINIO_SCHEME: str = "http"
    MINIO_ENCRYPT: bool = False
    MINIO_READ_FROM_CDN: bool = False

    def storage_config(self, driver: Optional[str] = None) -> "StorageConfig":
        """
        获取存储驱动配置

        Args:
            driver: 驱动名称，默认使用FILESYSTEM_DRIVER

        Raises:
            ConfigurationError: 不支持的驱动
        """
        # 存储包在导入时依赖settings, 这里延迟导入
        from cloudfs.infrastructure.storage.object_storage.models import StorageConfig

        driver = (driver or self.FILESYSTEM_DRIVER).lower()
        prefix = driver.upper()
        if not hasattr(self, f"{prefix}_BUCKET"):
            raise ConfigurationError(f"不支持的存储驱动: {driver}")

        values = {
            name: getattr(self, f"{prefix}_{suffix}")
            for name, suffix in _STORAGE_FIELDS.items()
        }
        return StorageConfig(
            timeout=self.STORAGE_TIMEOUT,
            connect_timeout=self.STORAGE_CONNECT_TIMEOUT,
            **values
        )

    class Config:
        case_sensitive = True
        env_file = ".env"
        extra = "ignore"


# 创建设置实例
settings = Settings()
