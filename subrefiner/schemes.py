"""
节点链接解析与校验

支持 vmess / vless / trojan / ss 四种协议，按前缀分发（区分大小写）。
校验只检查结构：必填字段、base64、JSON、端口范围，不涉及协议握手。
"""

import base64
import binascii
import json
import re
import urllib.parse
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple, Union

from .errors import ExtractError, UnsupportedScheme, ValidationError

SCHEMES = ("vmess", "vless", "trojan", "ss")

# vmess 的端口上限比 TCP 范围宽，保持原样
VMESS_MAX_PORT = 99999
URI_MAX_PORT = 65535

_PORT_RE = re.compile(r"[+-]?[0-9]+")

PortValue = Union[int, float, str]


class Endpoint(NamedTuple):
    host: str
    port: int


def scheme_of(line: str) -> str:
    """返回行的协议名，不支持时抛出 UnsupportedScheme"""
    for scheme in SCHEMES:
        if line.startswith(scheme + "://"):
            return scheme
    raise UnsupportedScheme("unsupported or unexpected scheme")


# ========== vmess ==========
def decode_vmess_base64(payload: str) -> bytes:
    """解码 vmess 负载，兼容 URL-safe 字符和缺失的填充"""
    payload = payload.strip()
    if not payload:
        raise ValidationError("empty vmess payload", "vmess")
    payload = payload.replace("-", "+").replace("_", "/")
    if len(payload) % 4:
        payload += "=" * (4 - len(payload) % 4)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"vmess base64 decode: {e}", "vmess") from e


def coerce_port(value: Optional[PortValue]) -> int:
    """
    把 JSON 中的 port 字段转换为整数

    接受字符串、整数和浮点数；空字符串、非数字字符串、缺失或其他类型都视为错误。
    """
    # bool 是 int 的子类，JSON 的 true/false 不是端口
    if isinstance(value, bool):
        raise ValidationError("port missing or wrong type")
    if isinstance(value, str):
        if value == "":
            raise ValidationError("empty port")
        if not _PORT_RE.fullmatch(value):
            raise ValidationError(f"cannot parse port {value!r}")
        return int(value)
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            raise ValidationError(f"cannot parse port {value!r}") from None
    if isinstance(value, int):
        return value
    raise ValidationError("port missing or wrong type")


def _vmess_document(line: str) -> Dict[str, Any]:
    raw = line[len("vmess://"):]
    raw = raw.split("#", 1)[0].strip()
    if not raw:
        raise ValidationError("vmess: empty payload after trimming fragment", "vmess")

    payload = decode_vmess_base64(raw)
    try:
        doc = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ValidationError(f"vmess json: {e}", "vmess") from e
    if not isinstance(doc, dict):
        raise ValidationError("vmess json: not an object", "vmess")
    return doc


def _vmess_endpoint(doc: Dict[str, Any]) -> Endpoint:
    host = doc.get("add")
    if not isinstance(host, str) or not host.strip():
        raise ValidationError("vmess: missing add (server)", "vmess")
    try:
        port = coerce_port(doc.get("port"))
    except ValidationError as e:
        raise ValidationError(f"vmess: {e}", "vmess") from e
    return Endpoint(host, port)


def validate_vmess(line: str) -> None:
    doc = _vmess_document(line)
    _, port = _vmess_endpoint(doc)
    if port <= 0 or port > VMESS_MAX_PORT:
        raise ValidationError(f"vmess: invalid port {port}", "vmess")

    uid = doc.get("id")
    if not isinstance(uid, str) or not uid.strip():
        raise ValidationError("vmess: missing id (UUID)", "vmess")


# ========== vless / trojan / ss ==========
def split_host_port(netloc: str) -> Tuple[str, str]:
    """从 netloc 中取出 host 和端口原文，IPv6 字面量去掉方括号"""
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        host, _, rest = hostport[1:].partition("]")
        return host, rest[1:] if rest.startswith(":") else ""
    host, _, port = hostport.partition(":")
    return host, port


def _split_uri(line: str, scheme: str) -> Tuple[urllib.parse.SplitResult, Endpoint]:
    try:
        parts = urllib.parse.urlsplit(line)
    except ValueError as e:
        raise ValidationError(f"parse: {e}", scheme) from e
    host, port_text = split_host_port(parts.netloc)
    if not host:
        raise ValidationError("missing host", scheme)

    if not port_text:
        raise ValidationError("missing port", scheme)
    if not _PORT_RE.fullmatch(port_text):
        raise ValidationError(f"cannot parse port {port_text!r}", scheme)
    port = int(port_text)
    return parts, Endpoint(host, port)


def _userinfo(parts: urllib.parse.SplitResult) -> str:
    if "@" not in parts.netloc:
        return ""
    return urllib.parse.unquote(parts.netloc.rpartition("@")[0])


def _check_uri_port(endpoint: Endpoint, scheme: str) -> None:
    if endpoint.port <= 0 or endpoint.port > URI_MAX_PORT:
        raise ValidationError(f"invalid port {endpoint.port}", scheme)


def validate_vless(line: str) -> None:
    parts, endpoint = _split_uri(line, "vless")
    _check_uri_port(endpoint, "vless")
    user = urllib.parse.unquote(parts.username or "")
    if not user.strip():
        raise ValidationError("missing user/id in vless url", "vless")


def validate_trojan(line: str) -> None:
    parts, endpoint = _split_uri(line, "trojan")
    _check_uri_port(endpoint, "trojan")
    password = urllib.parse.unquote(parts.username or "")
    if not password.strip():
        raise ValidationError("missing trojan password in user part", "trojan")


def decode_ss_userinfo(userinfo: str) -> Tuple[str, str]:
    """
    解析 ss 的 userinfo，返回 (method, password)

    先按标准 base64 解码后以第一个 ':' 分割；解码失败或没有 ':' 时，
    直接按原文分割。password 允许为空。
    """
    try:
        decoded = base64.b64decode(userinfo, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        decoded = None
    if decoded is not None and ":" in decoded:
        method, _, password = decoded.partition(":")
        return method, password

    method, _, password = userinfo.partition(":")
    return method, password


def validate_shadowsocks(line: str) -> None:
    parts, endpoint = _split_uri(line, "ss")
    _check_uri_port(endpoint, "ss")

    userinfo = _userinfo(parts)
    if not userinfo.strip():
        raise ValidationError("missing userinfo (method:password)", "ss")

    method, _ = decode_ss_userinfo(userinfo)
    if not method:
        raise ValidationError("empty encryption method", "ss")


_VALIDATORS: Dict[str, Callable[[str], None]] = {
    "vmess": validate_vmess,
    "vless": validate_vless,
    "trojan": validate_trojan,
    "ss": validate_shadowsocks,
}


def validate_line(line: str) -> None:
    """校验单行节点，无效时抛出 ValidationError"""
    line = line.strip()
    _VALIDATORS[scheme_of(line)](line)


def is_valid_line(line: str) -> bool:
    try:
        validate_line(line)
    except ValidationError:
        return False
    return True


def extract_endpoint(line: str) -> Endpoint:
    """
    提取用于连通性测试的 (host, port)

    与校验共用同一套解析逻辑，结构无效的行以 ExtractError 失败。
    """
    line = line.strip()
    try:
        scheme = scheme_of(line)
        if scheme == "vmess":
            endpoint = _vmess_endpoint(_vmess_document(line))
        else:
            _, endpoint = _split_uri(line, scheme)
            _check_uri_port(endpoint, scheme)
    except ValidationError as e:
        raise ExtractError(str(e), e.scheme) from e

    # 可连接的端口只在 TCP 范围内
    if endpoint.port <= 0 or endpoint.port > URI_MAX_PORT:
        raise ExtractError(f"invalid port {endpoint.port}", scheme)
    return endpoint
