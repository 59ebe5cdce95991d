"""Tests for settings and the YAML listener configuration."""

from __future__ import annotations

import ssl
from pathlib import Path

import pytest
import yaml

from nova.config import (
    ConfigError,
    NovaConfig,
    Settings,
    load_nova_config,
    save_nova_config,
)

SAMPLE_YAML = """\
FQDN: nova.example.com
IPv4Addr: 127.0.0.1
IPv6Addr: "::1"
Port: 9090
TLSSettings:
  tlsType: non-tls
  tlsVersion: 1.2
  keyFile: ""
  certFile: ""
  caFile: ""
"""


class TestSettings:
    def test_db_config_from_settings(self) -> None:
        settings = Settings(
            DEBUG=True,
            DB_MAX_OPEN_CONNS=4,
            DB_BUSY_TIMEOUT_MS=0,
            DB_EXTENSIONS="a.so, b.so,",
        )
        config = settings.db_config()
        assert config.max_open_conns == 4
        assert config.debug is True
        assert config.busy_timeout_ms == 0
        assert config.extensions == ("a.so", "b.so")

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DB_QUERY_RETRIES", "7")
        monkeypatch.setenv("cache_type", "none")
        settings = Settings()
        assert settings.DB_QUERY_RETRIES == 7
        assert settings.CACHE_TYPE == "none"


class TestLoadNovaConfig:
    def test_load(self, tmp_path: Path) -> None:
        path = tmp_path / "nova.yaml"
        path.write_text(SAMPLE_YAML)

        config = load_nova_config(path)
        assert config.fqdn == "nova.example.com"
        assert config.ipv4_addr == "127.0.0.1"
        assert config.ipv6_addr == "::1"
        assert config.port == 9090
        assert config.tls.tls_type == "non-tls"
        # Unquoted 1.2 is read as a float
        assert config.tls.tls_version == "1.2"
        assert not config.tls.enabled

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_nova_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("Port: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_nova_config(path)

    def test_invalid_values(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("Port: 70000\n")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_nova_config(path)

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = load_nova_config(path)
        assert config.port is None
        assert config.tls.tls_type == "non-tls"


class TestSaveNovaConfig:
    def test_round_trip_with_original_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "nova.yaml"
        config = NovaConfig(fqdn="nova.local", port=8443)

        save_nova_config(path, config)

        document = yaml.safe_load(path.read_text())
        assert document["FQDN"] == "nova.local"
        assert document["Port"] == 8443
        assert document["TLSSettings"]["tlsType"] == "non-tls"
        assert load_nova_config(path) == config

    def test_serialization_failure_keeps_existing_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "nova.yaml"
        path.write_text(SAMPLE_YAML)

        def broken_dump(*args, **kwargs):
            raise yaml.YAMLError("cannot represent")

        monkeypatch.setattr(yaml, "safe_dump", broken_dump)
        with pytest.raises(yaml.YAMLError):
            save_nova_config(path, NovaConfig(fqdn="other"))

        assert path.read_text() == SAMPLE_YAML
        assert [p.name for p in tmp_path.iterdir()] == ["nova.yaml"]


class TestTLS:
    def test_missing_files_rejected(self, tmp_path: Path) -> None:
        config = NovaConfig.model_validate(
            {"TLSSettings": {"tlsType": "tls", "keyFile": str(tmp_path / "k.pem")}}
        )
        with pytest.raises(ConfigError, match="keyFile"):
            config.validate_tls_files()

    def test_mutual_tls_requires_ca(self, tmp_path: Path) -> None:
        key = tmp_path / "k.pem"
        cert = tmp_path / "c.pem"
        key.write_text("key")
        cert.write_text("cert")
        config = NovaConfig.model_validate(
            {"TLSSettings": {"tlsType": "mutual-tls", "keyFile": str(key), "certFile": str(cert)}}
        )
        with pytest.raises(ConfigError, match="caFile"):
            config.validate_tls_files()

    def test_uvicorn_options(self, tmp_path: Path) -> None:
        config = NovaConfig.model_validate(
            {
                "TLSSettings": {
                    "tlsType": "mutual-tls",
                    "tlsVersion": "1.3",
                    "keyFile": "k.pem",
                    "certFile": "c.pem",
                    "caFile": "ca.pem",
                }
            }
        )
        assert config.uvicorn_ssl_options() == {
            "ssl_keyfile": "k.pem",
            "ssl_certfile": "c.pem",
            "ssl_ca_certs": "ca.pem",
            "ssl_cert_reqs": ssl.CERT_REQUIRED,
        }

    def test_plain_listener_has_no_ssl_options(self) -> None:
        assert NovaConfig().uvicorn_ssl_options() == {}
