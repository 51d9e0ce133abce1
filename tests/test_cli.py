from __future__ import annotations

import pytest
from click.testing import CliRunner

from conftest import requires_git
from plugdeps.cli import cli


@pytest.fixture
def run(tmp_path):
    runner = CliRunner()
    env = {"PLUGDEPS_HOME": str(tmp_path / "home")}

    def _run(*args: str):
        return runner.invoke(cli, list(args), env=env)

    return _run


def write_plugins(path, body: str):
    path.write_text(body, encoding="utf-8")
    return str(path)


def test_list_shows_declared_plugins(run, tmp_path):
    plugins = write_plugins(tmp_path / "plugins.py", "PLUGINS = ['user/a', ('user/b', {'checkout': 'v1'})]\n")

    result = run("--plugins", plugins, "list")

    assert result.exit_code == 0, result.output
    assert "a: not installed (https://github.com/user/a)" in result.output
    assert "b: not installed (https://github.com/user/b)" in result.output


def test_missing_plugins_file(run, tmp_path):
    result = run("--plugins", str(tmp_path / "nope.py"), "list")

    assert result.exit_code == 1
    assert "Plugins file not found" in result.output


def test_invalid_plugin_spec(run, tmp_path):
    plugins = write_plugins(tmp_path / "plugins.py", "PLUGINS = [('user/a', {'checkout': 1})]\n")

    result = run("--plugins", plugins, "list")

    assert result.exit_code == 1
    assert "`checkout` in plugin spec" in result.output


def test_bad_snapshot_target(run, tmp_path):
    plugins = write_plugins(tmp_path / "plugins.py", "PLUGINS = []\n")
    bad = tmp_path / "bad.json"
    bad.write_text("[]", encoding="utf-8")

    result = run("--plugins", plugins, "checkout", str(bad))

    assert result.exit_code == 1
    assert "Invalid checkout target" in result.output


@requires_git
def test_install_update_snapshot(run, tmp_path, make_remote):
    remote = make_remote("a")
    plugins = write_plugins(tmp_path / "plugins.py", f"PLUGINS = [{remote.url!r}]\n")

    result = run("--plugins", plugins, "install")
    assert result.exit_code == 0, result.output
    assert "a: installed" in result.output

    remote.commit("a commit 3")
    result = run("--plugins", plugins, "update")
    assert result.exit_code == 0, result.output
    assert "a: pending" in result.output
    assert "a commit 3" in result.output

    result = run("--plugins", plugins, "snapshot")
    assert result.exit_code == 0, result.output
    assert (tmp_path / "home" / "snapshot.json").exists()
