import argparse
import logging
import os

from subrefiner.config import load_config, settings
from subrefiner.errors import ConfigError
from subrefiner.pipeline import run

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clean, validate and probe proxy subscriptions.")
    parser.add_argument("--config", default=settings.CONFIG_PATH, help="path to config.yaml")
    parser.add_argument("--out", default=settings.OUT_DIR, help="output directory")
    parser.add_argument("--timeout", type=float, default=settings.HTTP_TIMEOUT,
                        help="HTTP client timeout in seconds")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL, help="logging level")
    return parser


def main(argv=None) -> int:
    """读取配置，逐个处理订阅并写出 normal / lite / ipv4 / ipv6 文件"""
    args = build_parser().parse_args(argv)

    # 配置日志
    numeric_log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=numeric_log_level, format='%(asctime)s - %(levelname)s - %(message)s')

    settings.HTTP_TIMEOUT = args.timeout

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        return 1

    os.makedirs(args.out, exist_ok=True)
    reports = run(cfg, args.out)

    failed = [path for report in reports for path in report.failed]
    written = sum(len(report.written) for report in reports)
    logger.info(f"Done: {len(reports)} subscriptions, {written} files written, {len(failed)} failed.")
    if failed:
        logger.error(f"Failed outputs: {', '.join(failed)}")
        return 2
    return 0


if __name__ == '__main__':
    exit_code = main()
    exit(exit_code)
