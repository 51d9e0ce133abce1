# checkout.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import SnapshotParseError
from .git import git_cmd, strip_origin, timestamp
from .model import Job
from .scheduler import RunOptions
from .snapshot import is_inside, read_snapshot, rollback_file, snapshot, write_snapshot
from .spec import Spec, SpecStatus, record_job, run_hook
from .ui.console import Level

CheckoutTarget = Union[Mapping[str, object], str, os.PathLike, None]
Entry = Tuple[Spec, str]


# ----------------------------------------------------------------------
# Target resolution
# ----------------------------------------------------------------------

def load_target(specs: Sequence[Spec], target: CheckoutTarget) -> Dict[str, object]:
    """
    Turn a checkout target into a `name -> value` mapping.

    No target means "every plugin according to its own spec".

    Raises:
        SnapshotParseError: target is a path that cannot be read, or an
            unsupported type
    """
    if target is None:
        return {s.name: (True if s.checkout is None else s.checkout) for s in specs}
    if isinstance(target, (str, os.PathLike)):
        return read_snapshot(target)
    if isinstance(target, Mapping):
        return dict(target)
    raise SnapshotParseError(None, f"should be mapping, path or None, not {type(target).__name__}")


def select_entries(specs: Sequence[Spec], mapping: Mapping[str, object]) -> List[Tuple[Spec, Union[str, bool]]]:
    """
    Keep only targets that can be applied, in plugin registration order.

    Drops names without a registered spec, plugins with `checkout=False`,
    values that are neither a string nor True, and strings starting with
    `-` that git would read as an option.
    """
    res: List[Tuple[Spec, Union[str, bool]]] = []
    for spec in specs:
        if spec.name not in mapping or spec.checkout is False:
            continue
        value = mapping[spec.name]
        if (isinstance(value, str) and not value.startswith("-")) or value is True:
            res.append((spec, value))
    return res


def infer_default_branches(
    entries: Sequence[Tuple[Spec, Union[str, bool]]],
    options: RunOptions,
) -> List[Entry]:
    """Replace `True` targets with the remote default branch, dropping failures."""
    jobs: List[Job] = []
    for spec, value in entries:
        cmd = git_cmd("get_default_origin_branch") if value is True else []
        jobs.append(Job(cwd=spec.path, command=cmd))
    options.run(jobs)

    res: List[Entry] = []
    for (spec, value), job in zip(entries, jobs):
        if value is not True:
            res.append((spec, value))
            continue
        branch = strip_origin(job.output())
        if job.failed or branch == "" or branch == "HEAD":
            options.notify(f"Could not infer default branch for `{spec.name}`, skipping checkout", Level.WARNING)
            continue
        spec.default_branch = branch
        res.append((spec, branch))
    return res


# ----------------------------------------------------------------------
# Applying
# ----------------------------------------------------------------------

def _run_stage(entries: Sequence[Entry], jobs: Sequence[Job], options: RunOptions, prepare) -> None:
    for (spec, target), job in zip(entries, jobs):
        prepare(spec, target, job)
    options.run(jobs)
    for job in jobs:
        job.clean()


def checkout_entries(
    entries: Sequence[Entry],
    options: RunOptions,
    *,
    snapshot_specs: Sequence[Spec] = (),
    rollback_dir: Optional[str | Path] = None,
    fire_hooks: bool = True,
) -> List[Entry]:
    """
    Check out every `(spec, target)` entry.

    When `rollback_dir` is given, the current state of `snapshot_specs` is
    saved there first. Every `pre_change` hook runs before any command and
    every `post_change` hook after all of them, whatever the commands did.
    """
    entries = list(entries)
    if not entries:
        return entries

    if rollback_dir is not None:
        path = write_snapshot(snapshot(snapshot_specs, options), rollback_file(rollback_dir))
        options.notify(f"Saved rollback snapshot to {path}")

    jobs = [Job(cwd=spec.path) for spec, _ in entries]

    # Whether a target is a remote branch decides if there is anything to merge
    is_branch: Dict[str, bool] = {}
    for (spec, target), job in zip(entries, jobs):
        job.command = git_cmd("is_origin_branch", target) if target != "HEAD" else []
    options.run(jobs)
    for (spec, _), job in zip(entries, jobs):
        is_branch[spec.name] = not job.failed and job.output().strip() != ""
        job.clean()

    if fire_hooks:
        for spec, _ in entries:
            run_hook(spec, "pre_change", options.notifier)

    # Best-effort: a failed stash must not stop the checkout
    stash_jobs = [Job(cwd=spec.path, command=git_cmd("stash", timestamp())) for spec, _ in entries]
    options.run(stash_jobs)
    for (spec, _), job in zip(entries, stash_jobs):
        if job.failed:
            options.notify(f"Could not stash changes in `{spec.name}`\n{job.error()}", Level.WARNING)

    def prepare_checkout(spec: Spec, target: str, job: Job) -> None:
        job.command = git_cmd("checkout", target)
        job.exit_message = f"Checked out `{target}` in `{spec.name}`"

    def prepare_merge(spec: Spec, target: str, job: Job) -> None:
        job.command = git_cmd("merge_ff", target) if is_branch[spec.name] else []

    _run_stage(entries, jobs, options, prepare_checkout)
    _run_stage(entries, jobs, options, prepare_merge)

    # Next download should compute its log from the new state, not the old
    # `FETCH_HEAD`. Best-effort as well.
    marker_jobs = [
        Job(cwd=spec.path, command=[] if job.failed else git_cmd("reset_fetch_head"))
        for (spec, _), job in zip(entries, jobs)
    ]
    options.run(marker_jobs)
    for (spec, _), job in zip(entries, marker_jobs):
        if job.failed:
            options.notify(f"Could not reset FETCH_HEAD in `{spec.name}`\n{job.error()}", Level.WARNING)

    if fire_hooks:
        for spec, _ in entries:
            run_hook(spec, "post_change", options.notifier)

    for (spec, _), job in zip(entries, jobs):
        record_job(spec, job)
        if job.failed:
            options.notify(f"Error in `{spec.name}` during checkout\n{job.error()}", Level.ERROR)
        else:
            spec.status = SpecStatus.UPDATED
        if job.warning():
            options.notify(f"Warnings in `{spec.name}` during checkout\n{job.warning()}", Level.WARNING)
    return entries


def apply_checkout(
    specs: Sequence[Spec],
    target: CheckoutTarget = None,
    *,
    rollback_dir: Optional[str | Path] = None,
    options: Optional[RunOptions] = None,
) -> List[Entry]:
    """
    Check out registered plugins according to `target`.

    `target` is a `name -> target` mapping, a path to a saved snapshot, or
    None to use each plugin's own `checkout`. A rollback snapshot is written
    to `rollback_dir` first, unless `target` itself is a file from there.

    Returns the entries that were actually attempted.
    """
    options = options or RunOptions()
    specs = list(specs)
    mapping = load_target(specs, target)
    entries = infer_default_branches(select_entries(specs, mapping), options)

    if rollback_dir is not None and isinstance(target, (str, os.PathLike)) and is_inside(target, rollback_dir):
        rollback_dir = None

    return checkout_entries(entries, options, snapshot_specs=specs, rollback_dir=rollback_dir)
