import pytest

from nabu.config import (
    CONFIG_MODE_FILE_ONLY,
    CONFIG_MODE_HYBRID,
    DEFAULT_DEMO_RELAY_HOST,
    DEFAULT_DEMO_RELAY_PORT,
    DEFAULT_DEMO_RELAY_REGION,
    DEFAULT_RELAY_LISTEN_ADDR,
    ConfigError,
    build_dns_config,
    default_client_config,
    default_relay_config,
    load_client_config,
    load_relay_config,
    validate_client_config,
    validate_config_mode,
)
from nabu.dnsconfig import DEFAULT_TIMEOUT, parse_duration


def _write(tmp_path, text, name="cfg.yaml"):
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_default_client_config_matches_defaults():
    cfg = default_client_config()
    assert cfg.relay.host == DEFAULT_DEMO_RELAY_HOST
    assert cfg.relay.port == DEFAULT_DEMO_RELAY_PORT
    assert cfg.socks5.listen == "127.0.0.1:1080"
    assert cfg.dns.timeout == "5s"
    assert cfg.dns.enabled is False
    assert cfg.mode.config_mode == CONFIG_MODE_HYBRID
    assert cfg.mode.wg_compatible is True


def test_default_relay_config():
    cfg = default_relay_config()
    assert cfg.listen == DEFAULT_RELAY_LISTEN_ADDR
    assert cfg.region == DEFAULT_DEMO_RELAY_REGION
    assert cfg.security.wg_compatible is True
    assert cfg.security.tls_profile == "chrome-stable"


def test_defaults_are_independent():
    first = default_client_config()
    second = default_client_config()
    first.dns.blocklists.append("https://example.com/hosts")
    assert second.dns.blocklists == []


def test_validate_config_mode_rejects_unknown():
    with pytest.raises(ConfigError, match="invalid config mode"):
        validate_config_mode("bogus")


def test_load_relay_config_overrides(tmp_path):
    path = _write(
        tmp_path,
        "listen: 127.0.0.1:9443\nregion: test-region\nsecurity:\n  wg_compatible: false\n",
    )
    cfg = load_relay_config(path)
    assert cfg.listen == "127.0.0.1:9443"
    assert cfg.region == "test-region"
    assert cfg.security.wg_compatible is False
    assert cfg.security.tls_profile == default_relay_config().security.tls_profile


def test_load_relay_config_empty_file_gives_defaults(tmp_path):
    assert load_relay_config(_write(tmp_path, "")) == default_relay_config()


def test_load_relay_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_relay_config(tmp_path / "absent.yaml")


def test_load_relay_config_empty_region(tmp_path):
    with pytest.raises(ConfigError, match="region"):
        load_relay_config(_write(tmp_path, 'region: ""\n'))


def test_load_relay_config_invalid_listen(tmp_path):
    with pytest.raises(ConfigError, match="listen"):
        load_relay_config(_write(tmp_path, "listen: not-an-address\n"))


def test_load_relay_config_not_a_mapping(tmp_path):
    with pytest.raises(ConfigError, match="parse error"):
        load_relay_config(_write(tmp_path, "- a\n- b\n"))


def test_load_client_config_merges(tmp_path):
    path = _write(
        tmp_path,
        "relay:\n"
        "  host: relay.example.com\n"
        "  port: 8443\n"
        "dns:\n"
        "  enabled: true\n"
        "  protocol: dot\n"
        "  server: dns.example.com:853\n"
        "  timeout: 7s\n"
        "  blocklists:\n"
        "    - https://example.com/hosts\n"
        "mode:\n"
        "  config_mode: file-only\n",
    )
    cfg = load_client_config(path)
    assert cfg.relay.host == "relay.example.com"
    assert cfg.relay.port == 8443
    assert cfg.socks5.listen == default_client_config().socks5.listen
    assert cfg.dns.enabled is True
    assert cfg.dns.server == "dns.example.com:853"
    assert cfg.dns.blocklists == ["https://example.com/hosts"]
    assert cfg.mode.config_mode == CONFIG_MODE_FILE_ONLY
    dns_cfg = build_dns_config(cfg)
    assert dns_cfg.timeout == parse_duration("7s")
    assert "https://example.com/hosts" in dns_cfg.render_labyrinth_config()


def test_load_client_config_type_mismatch(tmp_path):
    with pytest.raises(ConfigError, match="parse error"):
        load_client_config(_write(tmp_path, "relay:\n  port: abc\n"))


def test_load_client_config_malformed_yaml(tmp_path):
    with pytest.raises(ConfigError, match="parse error"):
        load_client_config(_write(tmp_path, "relay: [\n"))


@pytest.mark.parametrize(
    "changes",
    [
        [("relay", "host", "")],
        [("relay", "port", 0)],
        [("relay", "port", 65536)],
        [("socks5", "listen", "nohostport")],
        [("mode", "config_mode", "bogus")],
        [("dns", "enabled", True), ("dns", "timeout", "abc")],
        [("dns", "enabled", True), ("dns", "timeout", "60s")],
        [("dns", "enabled", True), ("dns", "protocol", "bad")],
    ],
)
def test_validate_client_config_rejects(changes):
    cfg = default_client_config()
    for section, attr, value in changes:
        setattr(getattr(cfg, section), attr, value)
    with pytest.raises(ConfigError):
        validate_client_config(cfg)


def test_build_dns_config_from_defaults():
    cfg = default_client_config()
    dns_cfg = build_dns_config(cfg)
    assert dns_cfg.enabled is False
    assert dns_cfg.timeout == DEFAULT_TIMEOUT
    assert dns_cfg.protocol == cfg.dns.protocol
    assert dns_cfg.server == cfg.dns.server
    assert dns_cfg.listen_addr == cfg.dns.listen
    assert dns_cfg.metrics_addr == cfg.dns.metrics
    assert dns_cfg.upstream_summary() == "disabled"


def test_build_dns_config_copies_blocklists():
    cfg = default_client_config()
    cfg.dns.blocklists = ["https://example.com/hosts"]
    dns_cfg = build_dns_config(cfg)
    cfg.dns.blocklists.append("https://example.com/more")
    assert dns_cfg.blocklists == ["https://example.com/hosts"]


def test_build_dns_config_bad_timeout_even_when_disabled():
    cfg = default_client_config()
    cfg.dns.timeout = "soon"
    with pytest.raises(ConfigError, match="invalid dns timeout"):
        build_dns_config(cfg)