#!/usr/bin/env python3
"""
cloudfs command line

Runs one filesystem operation against the storage driver configured in
.env / the environment, e.g.:

    cloudfs ls docs -r
    cloudfs put docs/readme.md ./README.md --public
    cloudfs url docs/readme.md --expires 600
"""

import argparse
import json
import logging
import sys
from datetime import timedelta
from typing import List, Optional

from cloudfs.core.config import settings
from cloudfs.core.logging_config import setup_logging
from cloudfs.infrastructure.exceptions import ConfigurationError, ProviderError
from cloudfs.infrastructure.storage.object_storage import (
    ObjectStorageInterface,
    StorageFactory,
    UploadOptions,
    Visibility,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudfs", description="Operate on the configured object storage.")
    parser.add_argument("--driver", type=str, default=None, help="覆盖 FILESYSTEM_DRIVER")
    commands = parser.add_subparsers(dest="command", required=True)

    ls = commands.add_parser("ls", help="列出目录")
    ls.add_argument("directory", nargs="?", default="")
    ls.add_argument("-r", "--recursive", action="store_true")

    stat = commands.add_parser("stat", help="查看文件元数据")
    stat.add_argument("path")

    cat = commands.add_parser("cat", help="输出文件内容")
    cat.add_argument("path")

    put = commands.add_parser("put", help="上传本地文件")
    put.add_argument("path")
    put.add_argument("source")
    put.add_argument("--mimetype", type=str, default=None)
    put.add_argument("--public", action="store_true")

    rm = commands.add_parser("rm", help="删除文件或目录")
    rm.add_argument("path")
    rm.add_argument("-r", "--recursive", action="store_true")

    url = commands.add_parser("url", help="生成访问链接")
    url.add_argument("path")
    url.add_argument("--expires", type=int, default=None, help="临时链接有效期(秒)")

    return parser


def _run(storage: ObjectStorageInterface, args: argparse.Namespace) -> bool:
    if args.command == "ls":
        for record in storage.list_directory(args.directory, recursive=args.recursive):
            size = "-" if record.size is None else str(record.size)
            print(f"{record.type}\t{size}\t{record.path}")
        return True

    if args.command == "stat":
        record = storage.get_metadata(args.path)
        if record is None:
            return False
        print(json.dumps(record.to_dict(), ensure_ascii=False))
        return True

    if args.command == "cat":
        data = storage.read(args.path)
        if data is None:
            return False
        sys.stdout.buffer.write(data)
        sys.stdout.flush()
        return True

    if args.command == "put":
        options = UploadOptions(
            mimetype=args.mimetype,
            visibility=Visibility.PUBLIC if args.public else None,
        )
        with open(args.source, "rb") as f:
            record = storage.write_stream(args.path, f, options)
        if record is None:
            return False
        print(record.path)
        return True

    if args.command == "rm":
        if args.recursive:
            return storage.delete_directory(args.path)
        return storage.delete(args.path)

    if args.command == "url":
        if args.expires is None:
            print(storage.get_url(args.path))
            return True
        signed = storage.get_temporary_url(args.path, timedelta(seconds=args.expires))
        if signed is None:
            return False
        print(signed)
        return True

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None, storage: Optional[ObjectStorageInterface] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)

    try:
        storage = storage or StorageFactory.create_storage(args.driver)
    except ConfigurationError as e:
        logger.error(f"❌ 存储配置错误: {e}")
        return 2

    try:
        ok = _run(storage, args)
    except ProviderError as e:
        logger.error(f"❌ 操作失败: {e}")
        return 1
    except OSError as e:
        logger.error(f"❌ 读取本地文件失败: {e}")
        return 1
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
