import base64

import pytest
import requests

from subrefiner import utils
from subrefiner.errors import FetchError, ValidationError
from subrefiner.utils import (dedupe, filter_valid_lines, host_key, normalize_scheme,
                              parse_and_filter_lines, sanitize_file_name, split_possible,
                              try_decode_if_base64, validate_lines)

ALLOWED = ["vmess", "vless", "trojan", "ss"]


def test_try_decode_base64_subscription():
    body = "vless://u@1.2.3.4:443\ntrojan://p@5.6.7.8:443"
    encoded = base64.b64encode(body.encode())
    assert try_decode_if_base64(encoded + b"\n") == body.encode()


def test_try_decode_base64_with_line_breaks():
    body = "vless://u@1.2.3.4:443#" + "x" * 200
    encoded = base64.b64encode(body.encode()).decode()
    wrapped = "\n".join(encoded[i:i + 76] for i in range(0, len(encoded), 76))
    assert try_decode_if_base64(wrapped.encode()) == body.encode()


def test_try_decode_keeps_plain_text():
    plain = b"vless://u@1.2.3.4:443\n"
    assert try_decode_if_base64(plain) == plain


def test_try_decode_keeps_base64_without_links():
    encoded = base64.b64encode(b"hello world")
    assert try_decode_if_base64(encoded) == encoded


def test_try_decode_empty():
    assert try_decode_if_base64(b"  \n") == b""


def test_split_possible():
    assert split_possible("vless://u@1.2.3.4:443") == ["vless://u@1.2.3.4:443"]
    assert split_possible("vless://u@1.2.3.4:443 vmess://abc") == ["vless://u@1.2.3.4:443", "vmess://abc"]
    assert split_possible("trojan://p@h:1ss://m:p@h:2") == ["trojan://p@h:1", "ss://m:p@h:2"]
    assert split_possible("junk vless://a@b:1") == ["junk vless://a@b:1"]
    assert split_possible("junk vless://a@b:1 vmess://c") == ["vless://a@b:1", "vmess://c"]


def test_normalize_scheme():
    assert normalize_scheme("VLESS://U@Host:443") == "vless://U@Host:443"
    assert normalize_scheme("no scheme") == "no scheme"


def test_parse_and_filter_lines():
    text = "\n".join([
        "# comment",
        "// another",
        "; third",
        "",
        "VMess://abc",
        "http://ignored.example",
        "  vless://u@1.2.3.4:443  trojan://p@5.6.7.8:443  ",
        "ssr://not-allowed",
    ])
    assert parse_and_filter_lines(text, ALLOWED) == [
        "vmess://abc",
        "vless://u@1.2.3.4:443",
        "trojan://p@5.6.7.8:443",
    ]


def test_parse_respects_allowed_schemes():
    text = "vless://u@1.2.3.4:443\nss://m:p@1.2.3.4:1"
    assert parse_and_filter_lines(text, ["ss"]) == ["ss://m:p@1.2.3.4:1"]


def test_dedupe():
    assert dedupe(["a", " a ", "", "b", "a"]) == ["a", "b"]


def test_host_key():
    assert host_key("vless://u@Example.COM:443?x=1#n") == "example.com:443"
    assert host_key("vless://u@[2001:db8::1]:443") == "[2001:db8::1]:443"
    assert host_key("weird@Host:1?x#y") == "host:1"
    assert host_key("PLAIN") == "plain"


@pytest.mark.parametrize("name,expected", [
    ("normal", "normal"),
    (" a/b ", "a_b"),
    ('x<y>z:"w"\\v|u?t*', "x_y_z__w__v_u_t_"),
    ("tab\there", "tab_here"),
    ("   ", "default"),
    (".", "_"),
    ("..", "__"),
    (" .. ", "__"),
    ("...", "..."),
])
def test_sanitize_file_name(name, expected):
    assert sanitize_file_name(name) == expected


def test_validate_lines_report():
    assert validate_lines(["vless://u@1.2.3.4:443", ""], "sub") is None
    err = validate_lines(["vless://u@1.2.3.4:443", "vless://u@1.2.3.4"], "sub")
    assert isinstance(err, ValidationError)
    assert "1 bad lines" in str(err)
    assert "[1] vless://u@1.2.3.4 -> missing port" in str(err)


def test_filter_valid_lines_logs_rejections(caplog):
    lines = ["vless://u@1.2.3.4:443", "trojan://@1.2.3.4:443", " ss://m:p@1.2.3.4:8388 "]
    with caplog.at_level("WARNING"):
        assert filter_valid_lines(lines, "sub") == ["vless://u@1.2.3.4:443", "ss://m:p@1.2.3.4:8388"]
    assert "sub: skip invalid line [1]" in caplog.text


class FakeResponse:
    def __init__(self, status_code, content=b""):
        self.status_code = status_code
        self.content = content


def test_download(monkeypatch):
    seen = {}

    def fake_get(url, timeout, headers):
        seen.update(url=url, timeout=timeout, headers=headers)
        return FakeResponse(200, b"body")

    monkeypatch.setattr(utils.requests, "get", fake_get)
    assert utils.download("https://example.com/sub", timeout=5) == b"body"
    assert seen["headers"]["User-Agent"] == "XraySubRefiner/1.1"
    assert seen["timeout"] == 5


def test_download_bad_status(monkeypatch):
    monkeypatch.setattr(utils.requests, "get", lambda url, timeout, headers: FakeResponse(404))
    with pytest.raises(FetchError, match="status 404"):
        utils.download("https://example.com/sub")


def test_download_transport_error(monkeypatch):
    def fail(url, timeout, headers):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(utils.requests, "get", fail)
    with pytest.raises(FetchError):
        utils.download("https://example.com/sub")
