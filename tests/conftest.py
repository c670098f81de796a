import base64
import json
import socket

import pytest


def make_vmess(doc, urlsafe=False, strip_padding=False, fragment=None):
    raw = json.dumps(doc).encode("utf-8")
    encoded = (base64.urlsafe_b64encode(raw) if urlsafe else base64.b64encode(raw)).decode("ascii")
    if strip_padding:
        encoded = encoded.rstrip("=")
    line = "vmess://" + encoded
    if fragment:
        line += "#" + fragment
    return line


@pytest.fixture
def listener():
    """本地监听端口，返回端口号"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(128)
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture
def closed_port():
    """绑定后立即关闭的端口，连接会被拒绝"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
