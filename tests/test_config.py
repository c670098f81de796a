import pytest

from subrefiner.config import load_config, parse_config
from subrefiner.errors import ConfigError

CONFIG = """
allowed_schemes: [" VLESS ", vmess, trojan, ss]
lite:
  strategy: per_host
  max_total: 0
  per_host_limit: 2
  n: -1
probe:
  timeout: 1.5
  concurrency: 10
subscriptions:
  - key: main
    url: https://example.com/sub
locations:
  - key: de
    url: https://example.com/de
"""


def test_load_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    cfg = load_config(str(path))
    assert cfg.allowed_schemes == ["vless", "vmess", "trojan", "ss"]
    assert cfg.lite.strategy == "per_host"
    assert cfg.lite.max_total == 100
    assert cfg.lite.n == 100
    assert cfg.lite.per_host_limit == 2
    assert cfg.probe.timeout == 1.5
    assert cfg.probe.concurrency == 10
    assert [s.key for s in cfg.all_subscriptions()] == ["main", "de"]


def test_defaults():
    cfg = parse_config({"allowed_schemes": ["vless"]})
    assert cfg.lite.strategy == "tail"
    assert cfg.lite.n == 100
    assert cfg.probe.timeout == 2.0
    assert cfg.probe.concurrency == 50
    assert cfg.all_subscriptions() == []


@pytest.mark.parametrize("data", [
    {},
    {"allowed_schemes": []},
    {"allowed_schemes": ["vless", "  "]},
    {"allowed_schemes": ["vless"], "lite": {"strategy": "random"}},
    {"allowed_schemes": ["vless"], "subscriptions": [{"key": "x"}]},
    ["not", "a", "mapping"],
])
def test_invalid_config(data):
    with pytest.raises(ConfigError):
        parse_config(data)


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "nope.yaml"))


def test_broken_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("allowed_schemes: [vless\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))
