from .checkout import apply_checkout
from .errors import HookError, PlugdepsError, ProcessExitError, SnapshotParseError, StreamError, ValidationError
from .model import Job
from .pipeline import Pipeline, update
from .scheduler import RunOptions, run_jobs
from .session import Session
from .settings import Settings
from .snapshot import read_snapshot, snapshot, write_snapshot
from .spec import Spec, SpecOptions, SpecStatus, normalize

__all__ = [
    "apply_checkout",
    "HookError",
    "PlugdepsError",
    "ProcessExitError",
    "SnapshotParseError",
    "StreamError",
    "ValidationError",
    "Job",
    "Pipeline",
    "update",
    "RunOptions",
    "run_jobs",
    "Session",
    "Settings",
    "read_snapshot",
    "snapshot",
    "write_snapshot",
    "Spec",
    "SpecOptions",
    "SpecStatus",
    "normalize",
]
