import os
import re

import pytest

from avd.config import Config, ConfigError, PortConfig, default_config
from avd.configfile import expand_path, read_config, write_config


def test_expand_path_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert expand_path("~/avd.conf") == os.path.join(str(tmp_path), "avd.conf")


def test_expand_path_absolute_unchanged(tmp_path):
    path = str(tmp_path / "avd.conf")
    assert expand_path(path) == path


def test_read_missing_returns_none(tmp_path):
    assert read_config(str(tmp_path / "missing.conf")) is None


def test_write_then_read(tmp_path):
    path = str(tmp_path / "avd.conf")
    cfg = default_config()
    write_config(path, cfg)
    assert read_config(path) == cfg
    assert not os.path.exists(path + ".new")


def test_read_with_tilde(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = default_config()
    write_config("~/avd.conf", cfg)
    assert (tmp_path / "avd.conf").exists()
    assert read_config("~/avd.conf") == cfg


def test_second_write_backs_up_previous(tmp_path):
    path = str(tmp_path / "avd.conf")
    first = Config(ports=[PortConfig(address="tcp:0.0.0.0:1935")])
    second = default_config()
    write_config(path, first)
    write_config(path, second)

    assert read_config(path) == second
    backups = os.listdir(path + "-backup")
    assert len(backups) == 1
    assert re.fullmatch(r"\d{8}_\d{4}\.yaml", backups[0])
    with open(os.path.join(path + "-backup", backups[0]), encoding="utf-8") as fh:
        assert Config.loads(fh.read()) == first


def test_read_invalid_yaml_raises(tmp_path):
    path = tmp_path / "avd.conf"
    path.write_text("ports: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        read_config(str(path))


def test_read_invalid_value_raises(tmp_path):
    path = tmp_path / "avd.conf"
    path.write_text("ports:\n  - mode: nobody\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="unknown port mode"):
        read_config(str(path))