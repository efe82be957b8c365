import argparse

import pytest

from sockhub.bootstrap.config import loader


@pytest.fixture
def cli(monkeypatch):
    args = argparse.Namespace(mode="serve", config=None, log_level="INFO")
    monkeypatch.setattr(loader, "get_cli_args", lambda: args)
    monkeypatch.delenv("SOCKHUBCONFIG", raising=False)
    loader.get_configfile.cache_clear()
    yield args
    loader.get_configfile.cache_clear()


@pytest.mark.ut
def test_cli_path_wins_over_environment(cli, config_file, tmp_path, monkeypatch):
    other = tmp_path / "other.yaml"
    other.write_text("{}")
    cli.config = str(config_file)
    monkeypatch.setenv("SOCKHUBCONFIG", str(other))

    assert loader.get_configfile() == config_file


@pytest.mark.ut
def test_environment_path(cli, config_file, monkeypatch):
    monkeypatch.setenv("SOCKHUBCONFIG", str(config_file))

    assert loader.get_configfile() == config_file


@pytest.mark.ut
def test_default_file_is_optional(cli, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert loader.get_configfile() is None

    loader.get_configfile.cache_clear()
    (tmp_path / "sockhub.yaml").write_text("{}")
    assert loader.get_configfile() == tmp_path / "sockhub.yaml"


@pytest.mark.ut
def test_explicit_missing_file_exits(cli, tmp_path):
    cli.config = str(tmp_path / "missing.yaml")

    with pytest.raises(SystemExit) as info:
        loader.get_configfile()

    assert "missing.yaml" in str(info.value)
