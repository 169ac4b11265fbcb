import logging
import os
from datetime import datetime
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# 第三方SDK日志过于冗长
NOISY_LOGGERS = ('urllib3', 'qcloud_cos', 'minio')


def setup_logging(level: Union[int, str] = logging.INFO, log_dir: Optional[str] = None) -> logging.Logger:
    """
    配置根日志器

    Args:
        level: 日志级别
        log_dir: 日志目录，指定时按启动时间生成日志文件

    Returns:
        根日志器
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    # 创建logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # 创建格式器
    formatter = logging.Formatter(LOG_FORMAT)

    # 创建控制台处理器
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    handlers = [console_handler]
    if log_dir:
        # 创建日志目录（如果不存在）
        os.makedirs(log_dir, exist_ok=True)
        log_filename = os.path.join(log_dir, f"cloudfs_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log")
        file_handler = logging.FileHandler(log_filename, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # 清除可能已存在的处理器，然后添加新的处理器
    logger.handlers = handlers

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
