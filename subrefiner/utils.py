import base64
import binascii
import logging
import re
import urllib.parse
from typing import Iterable, List, Optional

import requests

from .errors import FetchError, ValidationError
from .schemes import validate_line

logger = logging.getLogger(__name__)

POSSIBLE_B64 = re.compile(r"^[A-Za-z0-9+/=\r\n]+$")
COMMENT_LINE = re.compile(r"^\s*(#|//|;).*$")
INVALID_FILE_CHARS = re.compile(r'[<>:"\\|?*\x00-\x1F]')
DECODED_MARKERS = ("vless://", "vmess://", "ss://")


def download(url: str, timeout: float = 20, user_agent: str = "XraySubRefiner/1.1") -> bytes:
    """下载订阅内容，设置超时和状态码检查"""
    headers = {'User-Agent': user_agent}
    try:
        resp = requests.get(url, timeout=timeout, headers=headers)
    except requests.exceptions.RequestException as e:
        raise FetchError(f"fetch {url}: {e}") from e
    if resp.status_code != 200:
        raise FetchError(f"fetch {url}: status {resp.status_code}")
    logger.info(f"Downloaded {len(resp.content)} bytes from {url}")
    return resp.content


def try_decode_if_base64(raw: bytes) -> bytes:
    """订阅整体是 base64 且解码后包含节点链接时返回解码内容，否则原样返回"""
    trimmed = raw.strip()
    if not trimmed:
        return trimmed
    try:
        text = trimmed.decode("ascii")
    except UnicodeDecodeError:
        return raw
    if not POSSIBLE_B64.match(text):
        return raw

    decoded = _b64decode(text)
    if decoded is None:
        decoded = _b64decode(text.replace("\r", "").replace("\n", ""))
        if decoded is None:
            return raw

    lowered = decoded.decode("utf-8", errors="replace").lower()
    if any(marker in lowered for marker in DECODED_MARKERS):
        return decoded
    return raw


def _b64decode(text: str) -> Optional[bytes]:
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None


def normalize_scheme(line: str) -> str:
    """只把协议名转为小写"""
    idx = line.find("://")
    if idx < 0:
        return line
    return line[:idx].lower() + line[idx:]


def split_possible(line: str) -> List[str]:
    """一行里拼接了多个链接时拆开"""
    if line.count("://") <= 1:
        return [line]

    parts = []
    cur = line
    while True:
        idx = cur.find("://")
        if idx < 0:
            break
        start = idx
        while start > 0 and cur[start - 1].isascii() and cur[start - 1].isalpha():
            start -= 1
        rest = cur[start:]
        nxt = rest.find("://", idx - start + 3)
        if nxt < 0:
            parts.append(rest.strip())
            break
        # 下一个 "://" 前的协议名属于下一个链接
        cut = nxt
        while cut > 0 and rest[cut - 1].isascii() and rest[cut - 1].isalpha():
            cut -= 1
        parts.append(rest[:cut].strip())
        cur = rest[cut:]
    return parts


def parse_and_filter_lines(text: str, allowed: Iterable[str]) -> List[str]:
    """逐行拆分订阅内容，跳过空行和注释，只保留允许的协议"""
    prefixes = tuple(f"{scheme}://" for scheme in allowed)
    out = []
    for line in text.splitlines():
        line = line.strip()
        if not line or COMMENT_LINE.match(line):
            continue
        for item in split_possible(line):
            item = item.strip()
            if not item or COMMENT_LINE.match(item):
                continue
            if not item.lower().startswith(prefixes):
                continue
            out.append(normalize_scheme(item))
    return out


def dedupe(lines: Iterable[str]) -> List[str]:
    """去重，保留首次出现的顺序"""
    seen = set()
    result = []
    for line in lines:
        key = line.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(key)
    return result


def host_key(line: str) -> str:
    """节点的 host:port 键（小写），用于按服务器分组"""
    try:
        netloc = urllib.parse.urlsplit(line).netloc
    except ValueError:
        netloc = ""
    if netloc:
        return netloc.rpartition("@")[2].lower()
    at = line.find("@")
    if at >= 0:
        rest = line[at + 1:]
        return re.split(r"[?#]", rest, maxsplit=1)[0].lower()
    return line.lower()


def sanitize_file_name(name: str) -> str:
    name = name.strip().replace("/", "_")
    name = INVALID_FILE_CHARS.sub("_", name)
    # "." 和 ".." 会指向当前或上级目录
    if name in (".", ".."):
        return "_" * len(name)
    return name or "default"


def validate_lines(lines: Iterable[str], key: str) -> Optional[ValidationError]:
    """汇总校验结果，全部有效时返回 None"""
    problems = []
    for idx, raw in enumerate(lines):
        line = raw.strip()
        if not line:
            continue
        try:
            validate_line(line)
        except ValidationError as e:
            problems.append(f"  [{idx}] {line} -> {e}")
    if not problems:
        return None
    return ValidationError(
        f"validation failed for key {key!r} ({len(problems)} bad lines):\n" + "\n".join(problems)
    )


def filter_valid_lines(lines: Iterable[str], key: str) -> List[str]:
    """保留结构有效的行，无效行记录日志后丢弃"""
    out = []
    for idx, raw in enumerate(lines):
        line = raw.strip()
        if not line:
            continue
        try:
            validate_line(line)
        except ValidationError as e:
            logger.warning(f"{key}: skip invalid line [{idx}]: {e}")
            continue
        out.append(line)
    return out
