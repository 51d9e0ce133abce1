# pipeline.py
"""
Update pipeline for plugdeps.

Runs Prepare -> Preprocess -> Download -> Process over a list of specs,
mutating them in place, then optionally applies the resolved checkout.

Every stage issues one git command per plugin and hands all of them to the
scheduler at once. `specs[i]` and `jobs[i]` always describe the same
repository. A plugin whose command fails keeps its current field values and
is skipped by every later stage; other plugins are unaffected.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .checkout import checkout_entries
from .git import git_cmd, strip_origin
from .model import Job
from .scheduler import RunOptions
from .spec import NO_CHANGES_LOG, Spec, SpecStatus, record_job, report_specs

Prepare = Callable[[Spec, Job], None]
Process = Callable[[Spec, Job], None]


class Pipeline:
    """One update run over a fixed, index-aligned set of specs and jobs."""

    def __init__(self, specs: Sequence[Spec], options: Optional[RunOptions] = None):
        self.specs: List[Spec] = list(specs)
        self.jobs: List[Job] = [Job(cwd=spec.path) for spec in self.specs]
        self.options = options or RunOptions()

    # ------------------------------------------------------------------
    # Stage plumbing
    # ------------------------------------------------------------------

    def run_stage(self, prepare: Prepare, process: Optional[Process] = None) -> None:
        """
        Issue one command per job, run them all, then read results back.

        `process` only sees jobs that have not failed so far. Jobs are
        cleaned afterwards; errors stay on them.
        """
        for spec, job in zip(self.specs, self.jobs):
            prepare(spec, job)

        self.options.run(self.jobs)

        if process is not None:
            for spec, job in zip(self.specs, self.jobs):
                if not job.failed:
                    process(spec, job)

        for job in self.jobs:
            job.clean()

    def n_healthy(self) -> int:
        return sum(1 for job in self.jobs if not job.failed)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def prepare(self) -> None:
        """Make `origin` point to the declared source."""
        def prepare(spec: Spec, job: Job) -> None:
            job.command = git_cmd("set_origin", spec.source)

        self.run_stage(prepare)

    def preprocess(self) -> None:
        """Read current state: HEAD, remote default branch, track branch commit."""
        def prepare_head(spec: Spec, job: Job) -> None:
            job.command = git_cmd("get_hash", "HEAD")

        def process_head(spec: Spec, job: Job) -> None:
            spec.head = job.output()

        self.run_stage(prepare_head, process_head)

        def prepare_default(spec: Spec, job: Job) -> None:
            # Plugins that name both targets do not need `origin/HEAD`
            if spec.checkout is None or spec.checkout is True or spec.track is None:
                job.command = git_cmd("get_default_origin_branch")

        def process_default(spec: Spec, job: Job) -> None:
            branch = strip_origin(job.output())
            if branch == "":
                return
            spec.default_branch = branch
            if spec.checkout is None or spec.checkout is True:
                spec.checkout = branch
            if spec.track is None:
                spec.track = branch

        self.run_stage(prepare_default, process_default)

        self.resolve_commit("track", "track_from", fallback="head")

    def download(self) -> None:
        """Fetch new remote data for every healthy plugin."""
        n = self.n_healthy()
        if n == 0:
            return
        self.options.notify(f"Downloading {n} update{'s' if n > 1 else ''}")

        def prepare(spec: Spec, job: Job) -> None:
            job.command = git_cmd("fetch")
            job.exit_message = f"Downloaded update for `{spec.name}`"

        self.run_stage(prepare)

    def process(self) -> None:
        """Resolve checkout and track targets to commits and compute logs."""
        for spec in self.specs:
            # Never check out: stay where we are
            if spec.checkout is False:
                spec.checkout_to = spec.head

        self.resolve_commit("checkout", "checkout_to")
        self.resolve_commit("track", "track_to")

        self.compute_log("head", "checkout_to", "checkout_log")
        self.compute_log("track_from", "track_to", "track_log")
        self.compute_log("checkout_to", "track_to", "pending_log")

    def checkout(self, rollback_dir: Optional[str | Path] = None) -> None:
        """Check out the resolved commit of every plugin that has something to change."""
        entries = []
        for spec, job in zip(self.specs, self.jobs):
            if job.failed:
                continue
            if not spec.has_updates:
                spec.status = SpecStatus.NO_CHANGES
                continue
            entries.append((spec, spec.checkout_to))

        checkout_entries(entries, self.options, snapshot_specs=self.specs, rollback_dir=rollback_dir)

    def finalize(self, action: str) -> None:
        """Copy per-plugin errors onto specs and report them."""
        for spec, job in zip(self.specs, self.jobs):
            record_job(spec, job)
        report_specs(self.specs, action, self.options.notifier)

    # ------------------------------------------------------------------
    # Shared sub-stages
    # ------------------------------------------------------------------

    def resolve_commit(self, field_ref: str, field_out: str, fallback: Optional[str] = None) -> None:
        """
        Resolve a branch-or-revision field to a commit.

        A target that names a remote branch resolves to `origin/<target>`;
        anything else (tag, commit, `HEAD`, revision expression) is resolved
        as is. Empty results fall back to the `fallback` field.
        """
        is_branch: Dict[str, bool] = {}

        def prepare_branch(spec: Spec, job: Job) -> None:
            ref = getattr(spec, field_ref)
            needs_check = isinstance(ref, str) and ref != "HEAD"
            job.command = git_cmd("is_origin_branch", ref) if needs_check else []

        def process_branch(spec: Spec, job: Job) -> None:
            is_branch[spec.name] = job.output().strip() != ""

        self.run_stage(prepare_branch, process_branch)

        def prepare_hash(spec: Spec, job: Job) -> None:
            ref = getattr(spec, field_ref)
            if not isinstance(ref, str) or getattr(spec, field_out) is not None:
                return
            rev = f"origin/{ref}" if is_branch.get(spec.name) else ref
            job.command = git_cmd("get_hash", rev)

        def process_hash(spec: Spec, job: Job) -> None:
            if getattr(spec, field_out) is not None:
                return
            commit = job.output()
            if commit == "" and fallback is not None:
                commit = getattr(spec, fallback)
            setattr(spec, field_out, commit or None)

        self.run_stage(prepare_hash, process_hash)

    def compute_log(self, field_from: str, field_to: str, field_out: str) -> None:
        def prepare(spec: Spec, job: Job) -> None:
            job.command = git_cmd("log", getattr(spec, field_from), getattr(spec, field_to))

        def process(spec: Spec, job: Job) -> None:
            setattr(spec, field_out, job.output() or NO_CHANGES_LOG)

        self.run_stage(prepare, process)


def update(
    specs: Sequence[Spec],
    *,
    offline: bool = False,
    force: bool = False,
    rollback_dir: Optional[str | Path] = None,
    options: Optional[RunOptions] = None,
) -> List[Spec]:
    """
    Compute (and with `force`, apply) updates for `specs`.

    Without `force` the specs only describe what a checkout would do, so the
    caller can review `checkout_log` and friends and call the checkout
    executor later. Per-plugin problems are left on `spec.error`; nothing is
    raised for them.
    """
    pipeline = Pipeline(specs, options)
    pipeline.prepare()
    pipeline.preprocess()
    if not offline:
        pipeline.download()
    pipeline.process()
    pipeline.finalize("update")

    if force:
        pipeline.checkout(rollback_dir)
    return pipeline.specs
