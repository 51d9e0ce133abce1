from __future__ import annotations

import json

import pytest

from conftest import git, requires_git
from plugdeps.checkout import apply_checkout, infer_default_branches, load_target, select_entries
from plugdeps.errors import SnapshotParseError
from plugdeps.scheduler import RunOptions
from plugdeps.snapshot import is_inside, read_snapshot
from plugdeps.spec import SpecStatus, normalize
from plugdeps.ui.console import Level, MemoryNotifier


def test_select_entries_filters_targets():
    a = normalize("user/A")
    b = normalize("user/B", {"checkout": False})

    entries = select_entries([a, b], {"A": "v1.0", "B": "main", "C": "main"})

    assert entries == [(a, "v1.0")]


def test_select_entries_drops_invalid_values_and_keeps_order():
    a, b, c, d = (normalize(f"user/{n}") for n in "abcd")

    entries = select_entries([a, b, c, d], {"d": True, "c": 3, "b": False, "a": "abc123"})

    assert entries == [(a, "abc123"), (d, True)]


def test_load_target_defaults_to_each_spec():
    specs = [
        normalize("user/a"),
        normalize("user/b", {"checkout": True}),
        normalize("user/c", {"checkout": "v2"}),
        normalize("user/d", {"checkout": False}),
    ]

    assert load_target(specs, None) == {"a": True, "b": True, "c": "v2", "d": False}


def test_load_target_reads_snapshot_file(tmp_path):
    path = tmp_path / "snap.json"
    path.write_text(json.dumps({"a": "abc123"}), encoding="utf-8")

    assert load_target([], path) == {"a": "abc123"}
    assert load_target([], str(path)) == {"a": "abc123"}


def test_load_target_rejects_other_types():
    with pytest.raises(SnapshotParseError):
        load_target([], 42)


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '"main"'])
def test_unreadable_snapshot_aborts_before_any_change(tmp_path, content):
    path = tmp_path / "snap.json"
    path.write_text(content, encoding="utf-8")
    spec = normalize("user/a")
    spec.path = tmp_path / "never-touched"

    with pytest.raises(SnapshotParseError) as exc:
        apply_checkout([spec], path, rollback_dir=tmp_path / "rollback")
    assert str(path) in str(exc.value)
    assert not (tmp_path / "rollback").exists()


def test_missing_snapshot_file(tmp_path):
    with pytest.raises(SnapshotParseError):
        read_snapshot(tmp_path / "nope.json")


def test_failed_default_branch_drops_entry(tmp_path):
    notifier = MemoryNotifier()
    spec = normalize("user/a")
    spec.path = tmp_path

    entries = infer_default_branches([(spec, True)], RunOptions(notifier=notifier))

    assert entries == []
    [warning] = notifier.by_level(Level.WARNING)
    assert "`a`" in warning


def test_is_inside(tmp_path):
    assert is_inside(tmp_path / "rollback" / "x.json", tmp_path / "rollback")
    assert not is_inside(tmp_path / "other.json", tmp_path / "rollback")


@requires_git
def test_checkout_to_snapshot_is_idempotent(session, installed):
    remotes = installed("a", "b")
    before = session.snapshot()
    remotes["a"].commit("a commit 3")
    session.update(force=True)
    assert session.snapshot() != before

    session.checkout(before)

    assert session.snapshot() == before


@requires_git
def test_hooks_surround_all_commands_even_on_failure(session, installed):
    calls = []

    def hooks(name):
        return {
            "pre_change": lambda: calls.append((name, "pre")),
            "post_change": lambda: calls.append((name, "post")),
        }

    installed("a", "b", a={"hooks": hooks("a")}, b={"hooks": hooks("b")})

    entries = session.checkout({"a": "no-such-ref", "b": "main"})

    assert calls == [("a", "pre"), ("b", "pre"), ("a", "post"), ("b", "post")]
    (a, _), (b, _) = entries
    assert a.status == SpecStatus.ERROR
    assert "no-such-ref" in a.error
    assert b.status == SpecStatus.UPDATED
    assert b.error == ""


@requires_git
def test_rollback_is_saved_but_not_for_rollback_files(session, installed, settings):
    remotes = installed("a")
    first = git(remotes["a"].path, "rev-list", "--max-parents=0", "HEAD")
    latest = session.snapshot()

    session.checkout({"a": first})

    [rollback] = list(settings.rollback_dir.iterdir())
    assert read_snapshot(rollback) == latest
    assert session.snapshot() == {"a": first}

    session.checkout(rollback)

    assert list(settings.rollback_dir.iterdir()) == [rollback]
    assert session.snapshot() == latest


@requires_git
def test_local_changes_are_stashed(session, installed, settings):
    remotes = installed("a")
    first = git(remotes["a"].path, "rev-list", "--max-parents=0", "HEAD")
    plugin_dir = settings.plugin_path("a")
    (plugin_dir / "plugin.txt").write_text("local edit\n", encoding="utf-8")

    [(spec, _)] = session.checkout({"a": first})

    assert spec.status == SpecStatus.UPDATED
    assert git(plugin_dir, "rev-parse", "HEAD") == first
    assert "(plugdeps)" in git(plugin_dir, "stash", "list")


@requires_git
def test_checkout_false_is_never_touched(session, installed, settings):
    installed("a", a={"checkout": False})
    head = git(settings.plugin_path("a"), "rev-parse", "HEAD")

    entries = session.checkout({"a": "HEAD~1"})

    assert entries == []
    assert git(settings.plugin_path("a"), "rev-parse", "HEAD") == head


def test_snapshot_that_is_not_utf8(tmp_path):
    path = tmp_path / "snap.json"
    path.write_bytes(b'{"a": "\xff\xfe"}')

    with pytest.raises(SnapshotParseError) as exc:
        read_snapshot(path)
    assert str(path) in str(exc.value)


def test_select_entries_drops_option_like_targets():
    a, b = normalize("user/a"), normalize("user/b")

    entries = select_entries([a, b], {"a": "--upload-pack=evil", "b": "-q"})

    assert entries == []
