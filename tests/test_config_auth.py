# SSRS Reports Client
# File: tests/test_config_auth.py
# Version: v1

from __future__ import annotations

import httpx
import pytest
from httpx_ntlm import HttpNtlmAuth

from ssrs_reports.auth import build_auth, describe_auth, ntlm_username
from ssrs_reports.config import ReportServerConfig, build_server_url
from ssrs_reports.errors import ConfigurationError

_ENV_VARS = [
    "REPORTSERVER_URL",
    "REPORTSERVER_SERVER",
    "REPORTSERVER_PORT",
    "REPORTSERVER_INSTANCE",
    "REPORTSERVER_HTTPS",
    "REPORTSERVER_USERNAME",
    "REPORTSERVER_PASSWORD",
    "REPORTSERVER_DOMAIN",
    "REPORTSERVER_WORKSTATION",
    "REPORTSERVER_SECURITY",
    "REPORTSERVER_ROOT_FOLDER",
    "REPORTSERVER_USE_RS2012",
    "REPORTSERVER_CACHE",
    "REPORTSERVER_CACHE_ON_START",
    "REPORTSERVER_TIMEOUT",
    "REPORTSERVER_VERIFY_TLS",
    "REPORTSERVER_MOCK_MODE",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_build_server_url_variants():
    assert build_server_url("rs01") == "http://rs01/ReportServer"
    assert build_server_url("rs01", 8080, "SQL2019", True) == "https://rs01:8080/ReportServer_SQL2019"


def test_defaults_from_empty_env(clean_env):
    cfg = ReportServerConfig.from_env()

    assert cfg.url is None
    assert cfg.security == "ntlm"
    assert cfg.root_folder == "/"
    assert cfg.cache is False
    assert cfg.timeout == 120
    assert cfg.verify_tls is True
    assert cfg.mock_mode is False


def test_from_env_reads_server_parts(clean_env):
    clean_env.setenv("REPORTSERVER_SERVER", "rs01")
    clean_env.setenv("REPORTSERVER_PORT", "8443")
    clean_env.setenv("REPORTSERVER_INSTANCE", "PROD")
    clean_env.setenv("REPORTSERVER_HTTPS", "yes")
    clean_env.setenv("REPORTSERVER_SECURITY", " Basic ")
    clean_env.setenv("REPORTSERVER_CACHE", "on")
    clean_env.setenv("REPORTSERVER_USE_RS2012", "1")

    cfg = ReportServerConfig.from_env()

    assert cfg.server_url == "https://rs01:8443/ReportServer_PROD"
    assert cfg.security == "basic"
    assert cfg.cache is True
    assert cfg.use_rs2012 is True


def test_url_wins_over_server_parts(clean_env):
    clean_env.setenv("REPORTSERVER_URL", "http://reports.example/ReportServer/")
    clean_env.setenv("REPORTSERVER_SERVER", "ignored")

    assert ReportServerConfig.from_env().server_url == "http://reports.example/ReportServer"


def test_bad_numbers_fall_back_and_clamp(clean_env):
    clean_env.setenv("REPORTSERVER_TIMEOUT", "soon")
    clean_env.setenv("REPORTSERVER_PORT", "99999")
    clean_env.setenv("REPORTSERVER_SERVER", "rs01")

    cfg = ReportServerConfig.from_env()

    assert cfg.timeout == 120
    assert cfg.port == 65535


def test_validate_rejects_unknown_security():
    with pytest.raises(ConfigurationError, match="Unknown security mode"):
        ReportServerConfig(url="http://rs/ReportServer", security="kerberos").validate()


def test_validate_requires_url_unless_mock():
    with pytest.raises(ConfigurationError, match="REPORTSERVER_URL"):
        ReportServerConfig().validate()

    ReportServerConfig(mock_mode=True).validate()


def test_build_auth_none_is_anonymous():
    assert build_auth(ReportServerConfig(security="none")) is None


def test_build_auth_basic():
    auth = build_auth(ReportServerConfig(security="basic", username="u", password="p"))
    assert isinstance(auth, httpx.BasicAuth)


def test_build_auth_ntlm_is_default():
    auth = build_auth(ReportServerConfig(username="u", password="p", domain="CORP"))
    assert isinstance(auth, HttpNtlmAuth)


def test_build_auth_requires_user():
    with pytest.raises(ConfigurationError, match="requires a user name"):
        build_auth(ReportServerConfig(security="basic"))


def test_ntlm_username_prefixes_domain_once():
    assert ntlm_username(ReportServerConfig(username="u", domain="CORP")) == "CORP\\u"
    assert ntlm_username(ReportServerConfig(username="OTHER\\u", domain="CORP")) == "OTHER\\u"
    assert ntlm_username(ReportServerConfig(username="u@corp.example", domain="CORP")) == "u@corp.example"
    assert ntlm_username(ReportServerConfig(username="u")) == "u"


def test_describe_auth_hides_password():
    summary = describe_auth(ReportServerConfig(username="u", password="secret"))

    assert summary["password_configured"] is True
    assert "secret" not in summary.values()
