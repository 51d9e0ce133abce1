# session.py
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .checkout import (
    CheckoutTarget,
    Entry,
    apply_checkout,
    checkout_entries,
    infer_default_branches,
    load_target,
    select_entries,
)
from .git import git_cmd
from .model import Job
from .pipeline import update
from .scheduler import RunOptions
from .settings import Settings
from .snapshot import Snapshot, snapshot, write_snapshot
from .spec import Spec, SpecOptions, SpecStatus, normalize, record_job, report_specs, run_hook
from .ui.console import Level, Notifier


class Session:
    """
    Ordered registry of plugins plus the actions that operate on them.

    Plugins keep the order in which they were added. Adding a second spec
    with an already registered name keeps the first one.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        notifier: Optional[Notifier] = None,
        cancel_on_timeout: bool = True,
    ):
        self.settings = settings or Settings.from_env()
        self.options = RunOptions(
            concurrency=self.settings.concurrency,
            timeout=self.settings.job_timeout,
            notifier=notifier,
            cancel_on_timeout=cancel_on_timeout,
        )
        self._specs: Dict[str, Spec] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def specs(self) -> List[Spec]:
        return list(self._specs.values())

    def add(self, source: Any, options: Union[SpecOptions, Mapping[str, Any], None] = None) -> Spec:
        """
        Register a plugin. Does not touch the disk.

        Raises:
            ValidationError: malformed declaration
        """
        spec = normalize(source, options)
        return self.register(spec)

    def register(self, spec: Spec) -> Spec:
        existing = self._specs.get(spec.name)
        if existing is not None:
            self.options.notify(f"Plugin `{spec.name}` is already registered, ignoring new spec", Level.WARNING)
            return existing
        spec.path = self.settings.plugin_path(spec.name)
        self._specs[spec.name] = spec
        return spec

    def get(self, name: str) -> Optional[Spec]:
        return self._specs.get(name)

    def select(self, names: Optional[Iterable[str]] = None) -> List[Spec]:
        if names is None:
            return self.specs
        res = []
        for name in names:
            if name not in self._specs:
                raise ValueError(f"Plugin '{name}' is not registered. Known plugins: {sorted(self._specs)}")
            res.append(self._specs[name])
        return res

    def is_installed(self, spec: Spec) -> bool:
        return spec.path is not None and Path(spec.path).is_dir()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def install(self, names: Optional[Iterable[str]] = None) -> List[Spec]:
        """Clone plugins that are not on disk yet and check out their targets."""
        specs = [s.fresh() for s in self.select(names) if not self.is_installed(s)]
        if not specs:
            return []

        for spec in specs:
            run_hook(spec, "pre_create", self.options.notifier)

        self.settings.plugins_dir.mkdir(parents=True, exist_ok=True)
        jobs = [
            Job(
                cwd=self.settings.plugins_dir,
                command=git_cmd("clone", spec.source, str(spec.path)),
                exit_message=f"Installed `{spec.name}`",
            )
            for spec in specs
        ]
        self.options.run(jobs)
        for spec, job in zip(specs, jobs):
            record_job(spec, job)
        report_specs(specs, "installing plugin", self.options.notifier)

        cloned = [s for s in specs if not s.error]
        entries: List[Entry] = infer_default_branches(select_entries(cloned, load_target(cloned, None)), self.options)
        checkout_entries(entries, self.options, fire_hooks=False)

        for spec in cloned:
            run_hook(spec, "post_create", self.options.notifier)
            if not spec.error:
                spec.status = SpecStatus.INSTALLED
        return specs

    def update(
        self,
        names: Optional[Iterable[str]] = None,
        *,
        offline: bool = False,
        force: bool = False,
    ) -> List[Spec]:
        """Run the update pipeline over installed plugins."""
        specs = [s.fresh() for s in self.select(names) if self.is_installed(s)]
        return update(
            specs,
            offline=offline,
            force=force,
            rollback_dir=self.settings.rollback_dir,
            options=self.options,
        )

    def fetch(self, names: Optional[Iterable[str]] = None) -> List[Spec]:
        """Download new data and compute logs without changing any plugin."""
        return self.update(names, offline=False, force=False)

    def snapshot(self) -> Snapshot:
        return snapshot(self.specs, self.options)

    def write_snapshot(self, path: Optional[str | Path] = None) -> Path:
        return write_snapshot(self.snapshot(), path or self.settings.snapshot_path)

    def checkout(self, target: CheckoutTarget = None) -> List[Entry]:
        specs = [s.fresh() for s in self.specs if self.is_installed(s)]
        return apply_checkout(specs, target, rollback_dir=self.settings.rollback_dir, options=self.options)

    def remove(self, names: Iterable[str]) -> List[Spec]:
        """Delete plugin directories and unregister the plugins."""
        removed = []
        for spec in self.select(list(names)):
            run_hook(spec, "pre_delete", self.options.notifier)
            if self.is_installed(spec):
                try:
                    shutil.rmtree(spec.path)
                except OSError as e:
                    self.options.notify(f"Could not remove `{spec.name}`: {e}", Level.ERROR)
                    continue
            run_hook(spec, "post_delete", self.options.notifier)
            spec.status = SpecStatus.REMOVED
            del self._specs[spec.name]
            removed.append(spec)
        return removed

    def clean(self) -> List[Path]:
        """Delete plugin directories that no registered plugin owns."""
        plugins_dir = self.settings.plugins_dir
        if not plugins_dir.is_dir():
            return []

        removed = []
        for path in sorted(plugins_dir.iterdir()):
            if not path.is_dir() or path.name in self._specs:
                continue
            try:
                shutil.rmtree(path)
            except OSError as e:
                self.options.notify(f"Could not remove {path}: {e}", Level.ERROR)
                continue
            self.options.notify(f"Removed `{path.name}`")
            removed.append(path)
        return removed
