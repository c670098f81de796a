"""按 IP 类型拆分节点，以及生成精简（lite）列表"""

import logging
import urllib.parse
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import ValidationError
from .schemes import extract_endpoint
from .utils import host_key

logger = logging.getLogger(__name__)

DEFAULT_TAIL_SIZE = 100


def _family_host(line: str) -> Optional[str]:
    """
    取出用于判断 IP 类型的 host

    URI 类协议直接使用 netloc 中 '@' 之后的部分（可能带端口）；
    vmess 的 netloc 是 base64 负载，改用 JSON 中的 add 字段。
    """
    if line.startswith("vmess://"):
        try:
            return extract_endpoint(line).host
        except ValidationError:
            return None
    try:
        netloc = urllib.parse.urlsplit(line).netloc
    except ValueError:
        return None
    host = netloc.rpartition("@")[2]
    return host or None


def is_ipv4_literal(host: str) -> bool:
    """
    粗略判断：方括号为 IPv6；否则去掉端口后恰好包含 3 个 '.' 即为 IPv4

    域名同样归入 IPv6，这里不做 DNS 查询。
    """
    if host.startswith("[") and "]" in host:
        return False
    if host.count(":") == 1:
        host = host.partition(":")[0]
    return host.count(".") == 3


def split_by_family(lines: Sequence[str]) -> Tuple[List[str], List[str]]:
    """返回 (ipv4, ipv6)，无法取得 host 的行两边都不放"""
    ipv4, ipv6 = [], []
    for line in lines:
        host = _family_host(line)
        if host is None:
            logger.debug(f"Dropping line without host from family split: {line}")
            continue
        if is_ipv4_literal(host):
            ipv4.append(line)
        else:
            ipv6.append(line)
    return ipv4, ipv6


def build_tail(lines: Sequence[str], n: int = DEFAULT_TAIL_SIZE) -> List[str]:
    """返回最后 min(n, len(lines)) 行，保持原顺序"""
    if n <= 0:
        n = DEFAULT_TAIL_SIZE
    n = min(n, len(lines))
    return list(lines[len(lines) - n:])


def build_per_host(lines: Sequence[str], max_total: int = DEFAULT_TAIL_SIZE,
                   per_host_limit: int = 0) -> List[str]:
    """按顺序挑选，每个 host 最多 per_host_limit 行（<=0 不限），总数不超过 max_total"""
    if max_total <= 0:
        max_total = DEFAULT_TAIL_SIZE
    counts: Dict[str, int] = defaultdict(int)
    picked = []
    for line in lines:
        if len(picked) >= max_total:
            break
        key = host_key(line)
        if per_host_limit > 0 and counts[key] >= per_host_limit:
            continue
        counts[key] += 1
        picked.append(line)
    return picked


def build_lite(lines: Sequence[str], lite) -> List[str]:
    """根据 lite 配置的 strategy 生成精简列表"""
    if lite.strategy == "per_host":
        return build_per_host(lines, lite.max_total, lite.per_host_limit)
    return build_tail(lines, lite.n)
