"""
订阅处理流程

下载 -> base64 解码 -> 拆行过滤 -> 去重 -> 校验 -> 连通性测试 -> 拆分视图 -> 写文件。
每个订阅、每个输出文件都独立处理，一个失败不影响其他。
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .config import RefinerConfig, Subscription, settings
from .errors import ExportError, FetchError
from .exporter import export_lines
from .partition import build_lite, split_by_family
from .probe import Dialer, probe
from .utils import (dedupe, download, filter_valid_lines, parse_and_filter_lines,
                    sanitize_file_name, try_decode_if_base64)

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], bytes]

# (视图名, 是否排序)
VIEWS = (
    ("normal", True),
    ("lite", False),
    ("ipv4", True),
    ("ipv6", True),
)


@dataclass
class SubscriptionReport:
    key: str
    fetched: int = 0
    valid: int = 0
    reachable: int = 0
    written: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: Optional[str] = None


def default_fetcher(url: str) -> bytes:
    return download(url, timeout=settings.HTTP_TIMEOUT, user_agent=settings.USER_AGENT)


def build_views(reachable: List[str], cfg: RefinerConfig) -> dict:
    ipv4, ipv6 = split_by_family(reachable)
    return {
        "normal": reachable,
        "lite": build_lite(reachable, cfg.lite),
        "ipv4": ipv4,
        "ipv6": ipv6,
    }


def write_views(key_dir: str, views: dict, report: SubscriptionReport):
    for name, sort in VIEWS:
        path = os.path.join(key_dir, sanitize_file_name(name))
        try:
            export_lines(path, views[name], sort=sort)
        except ExportError as e:
            logger.error(f"{report.key}: failed to write {path}: {e}")
            report.failed.append(path)
            continue
        report.written.append(path)


def refine_subscription(sub: Subscription, cfg: RefinerConfig, out_dir: str,
                        fetch: Fetcher = default_fetcher,
                        dial: Optional[Dialer] = None) -> SubscriptionReport:
    """处理单个订阅，返回处理结果"""
    report = SubscriptionReport(key=sub.key)
    logger.info(f"Processing {sub.key} ({sub.url})")

    try:
        raw = fetch(sub.url)
    except FetchError as e:
        logger.error(f"fetch error {sub.url}: {e}")
        report.skipped = "fetch failed"
        return report

    decoded = try_decode_if_base64(raw).decode("utf-8", errors="replace")
    candidates = dedupe(parse_and_filter_lines(decoded, cfg.allowed_schemes))
    report.fetched = len(candidates)

    valid = filter_valid_lines(candidates, sub.key)
    report.valid = len(valid)
    logger.info(f"{sub.key} -> {len(valid)} lines after validation")
    if not valid:
        logger.info(f"{sub.key} has no valid configs after validation, skipping")
        report.skipped = "no valid lines"
        return report

    reachable = probe(valid, cfg.probe.timeout, cfg.probe.concurrency, dial=dial)
    report.reachable = len(reachable)
    logger.info(f"{sub.key} -> {len(valid)} syntactically valid, {len(reachable)} reachable")
    if not reachable:
        logger.info(f"{sub.key} has no reachable endpoints, skipping exports")
        report.skipped = "no reachable lines"
        return report

    key_dir = os.path.join(out_dir, sanitize_file_name(sub.key))
    try:
        os.makedirs(key_dir, exist_ok=True)
    except OSError as e:
        logger.error(f"{sub.key}: cannot create {key_dir}: {e}")
        report.failed.extend(os.path.join(key_dir, name) for name, _ in VIEWS)
        return report

    write_views(key_dir, build_views(reachable, cfg), report)
    return report


def run(cfg: RefinerConfig, out_dir: str, fetch: Fetcher = default_fetcher,
        dial: Optional[Dialer] = None) -> List[SubscriptionReport]:
    """依次处理 subscriptions 和 locations 中的所有订阅"""
    reports = []
    for sub in cfg.all_subscriptions():
        reports.append(refine_subscription(sub, cfg, out_dir, fetch=fetch, dial=dial))
    return reports
