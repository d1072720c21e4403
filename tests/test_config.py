#!/usr/bin/env python
import json

import pytest

from davfinder.config import config_section
from davfinder.config import get_finder
from davfinder.config import get_finder_params
from davfinder.config import read_config
from davfinder.discovery import DavResourceFinder

CONFIG = {
    "default": {
        "davfinder_uri": "mailto:alice@example.com",
        "davfinder_username": "alice",
        "davfinder_password": "secret",
    },
    "work": {
        "inherits": "default",
        "davfinder_uri": "https://dav.example.org/",
        "davfinder_timeout": "10",
    },
    "work_old": {"disable": True, "davfinder_uri": "https://old.example.org/"},
    "all_work": {"contains": ["work", "work_old"]},
}


@pytest.fixture
def clean_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in (
        "DAVFINDER_URI",
        "DAVFINDER_USERNAME",
        "DAVFINDER_PASSWORD",
        "DAVFINDER_PREEMPTIVE_AUTH",
        "DAVFINDER_TIMEOUT",
        "DAVFINDER_SSL_VERIFY_CERT",
        "DAVFINDER_CONFIG_FILE",
        "DAVFINDER_CONFIG_SECTION",
    ):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


@pytest.fixture
def config_file(tmp_path):
    fn = tmp_path / "davfinder.json"
    fn.write_text(json.dumps(CONFIG))
    return str(fn)


def test_config_section_inherits():
    section = config_section(CONFIG, "work")
    assert section["davfinder_uri"] == "https://dav.example.org/"
    assert section["davfinder_username"] == "alice"
    assert config_section(CONFIG, "nonexistent") == {}


def test_read_config_json(config_file):
    assert read_config(config_file) == CONFIG


def test_read_config_yaml(tmp_path):
    pytest.importorskip("yaml")
    fn = tmp_path / "config.yaml"
    fn.write_text("default:\n  davfinder_uri: https://example.com/\n")
    assert read_config(str(fn)) == {"default": {"davfinder_uri": "https://example.com/"}}


def test_read_config_missing(tmp_path):
    assert read_config(str(tmp_path / "nothing.json")) == {}


def test_read_config_default_location(clean_environment):
    cfgdir = clean_environment / ".config" / "davfinder"
    cfgdir.mkdir(parents=True)
    (cfgdir / "config.json").write_text(json.dumps(CONFIG))
    assert read_config(None) == CONFIG


def test_params_from_config_file(clean_environment, config_file):
    params = get_finder_params(config_file=config_file, section="work")
    assert params == {
        "uri": "https://dav.example.org/",
        "username": "alice",
        "password": "secret",
        "timeout": 10,
    }


def test_params_from_environment(clean_environment, monkeypatch, config_file):
    monkeypatch.setenv("DAVFINDER_CONFIG_FILE", config_file)
    monkeypatch.setenv("DAVFINDER_USERNAME", "bob")
    monkeypatch.setenv("DAVFINDER_PREEMPTIVE_AUTH", "yes")
    monkeypatch.setenv("DAVFINDER_SSL_VERIFY_CERT", "false")
    params = get_finder_params()
    assert params["uri"] == "mailto:alice@example.com"
    assert params["username"] == "bob"
    assert params["preemptive_auth"] is True
    assert params["ssl_verify_cert"] is False


def test_params_given_directly_win(clean_environment, monkeypatch):
    monkeypatch.setenv("DAVFINDER_URI", "https://env.example.com/")
    params = get_finder_params(url="https://param.example.com/", user="carol")
    assert params["uri"] == "https://param.example.com/"
    assert params["username"] == "carol"


def test_timeout_from_environment(clean_environment, monkeypatch):
    monkeypatch.setenv("DAVFINDER_TIMEOUT", "2.5")
    assert get_finder_params(uri="https://example.com/")["timeout"] == 2.5

    monkeypatch.setenv("DAVFINDER_TIMEOUT", "abc")
    params = get_finder_params(uri="https://example.com/")
    assert "timeout" not in params


def test_ca_bundle_kept(clean_environment):
    params = get_finder_params(
        uri="https://example.com/", ssl_verify_cert="/etc/ssl/ca.pem"
    )
    assert params["ssl_verify_cert"] == "/etc/ssl/ca.pem"


def test_no_uri(clean_environment):
    assert get_finder_params() is None
    assert get_finder() is None


def test_get_finder(clean_environment, config_file):
    finder = get_finder(config_file=config_file, preemptive_auth=True, timeout=5)
    assert isinstance(finder, DavResourceFinder)
    assert finder.credentials.uri == "mailto:alice@example.com"
    assert finder.credentials.user_name == "alice"
    assert finder.credentials.preemptive_auth
    assert finder.client.timeout == 5
    assert finder.client.auth is not None
