# snapshot.py
from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

from .errors import SnapshotParseError
from .git import git_cmd
from .model import Job
from .scheduler import RunOptions
from .spec import Spec

Snapshot = Dict[str, str]


def snapshot(specs: Iterable[Spec], options: Optional[RunOptions] = None) -> Snapshot:
    """
    Return the current commit of every plugin, keyed by plugin name.

    Plugins whose commit could not be read (missing directory, not a repo,
    empty output) are left out of the result entirely.
    """
    options = options or RunOptions()
    specs = list(specs)
    jobs = [Job(cwd=s.path, command=git_cmd("get_hash", "HEAD")) for s in specs]
    options.run(jobs)

    res: Snapshot = {}
    for spec, job in zip(specs, jobs):
        commit = job.output()
        if not job.failed and commit != "":
            res[spec.name] = commit
    return res


def write_snapshot(snap: Snapshot, path: str | Path) -> Path:
    """Persist a snapshot as a JSON object with sorted keys."""
    out_path = Path(path).expanduser()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(snap, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return out_path


def read_snapshot(path: str | Path) -> Dict[str, object]:
    """
    Load a persisted snapshot (or any `name -> target` mapping).

    Values are returned as stored; filtering them is up to the caller.

    Raises:
        SnapshotParseError: file is missing, not JSON, or not an object
    """
    in_path = Path(path).expanduser()
    try:
        data = json.loads(in_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SnapshotParseError(str(in_path), str(e)) from e
    except ValueError as e:
        # Also covers content that is not valid UTF-8
        raise SnapshotParseError(str(in_path), f"invalid JSON ({e})") from e

    if not isinstance(data, dict):
        raise SnapshotParseError(str(in_path), "content should be a JSON object")
    return data


def rollback_file(rollback_dir: str | Path) -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
    return Path(rollback_dir).expanduser() / f"{stamp}.json"


def is_inside(path: str | Path, directory: str | Path) -> bool:
    try:
        Path(path).expanduser().resolve().relative_to(Path(directory).expanduser().resolve())
    except ValueError:
        return False
    return True
