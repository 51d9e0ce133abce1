# spec.py
from __future__ import annotations

import inspect
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import HookError, ValidationError
from .model import Job
from .ui.console import Level, Notifier

HOOK_NAMES = ("pre_create", "post_create", "pre_change", "post_change", "pre_delete", "post_delete")

# `owner/repo` shorthand for GitHub
_USER_REPO = re.compile(r"^[\w-]+/[\w.-]+$")

NO_CHANGES_LOG = "<no changes>"

Hook = Callable[[], Any]


def _accepts_no_args(func: Callable) -> bool:
    try:
        inspect.signature(func).bind()
    except TypeError:
        return False
    except ValueError:
        # Builtins without introspectable signature
        return True
    return True


# ----------------------------------------------------------------------
# Declared options (validated)
# ----------------------------------------------------------------------

class HookOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pre_create: Optional[Callable[[], Any]] = None
    post_create: Optional[Callable[[], Any]] = None
    pre_change: Optional[Callable[[], Any]] = None
    post_change: Optional[Callable[[], Any]] = None
    pre_delete: Optional[Callable[[], Any]] = None
    post_delete: Optional[Callable[[], Any]] = None

    @field_validator("*")
    @classmethod
    def _zero_argument(cls, value):
        if value is not None and not _accepts_no_args(value):
            raise ValueError("should be callable without arguments")
        return value


class SpecOptions(BaseModel):
    """Every option a plugin declaration may carry, with its type."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[StrictStr] = None
    checkout: Union[StrictBool, StrictStr, None] = None
    track: Optional[StrictStr] = None
    hooks: HookOptions = Field(default_factory=HookOptions)


_FIELD_MESSAGES = {
    "name": "should be string",
    "checkout": "should be string or boolean",
    "track": "should be string",
    "hooks": "should be a table of hooks",
}


def _to_validation_error(exc: PydanticValidationError) -> ValidationError:
    err = exc.errors()[0]
    # Union members add their own tag to `loc`, so only the first part is
    # the option name (two parts for hooks)
    parts = [str(part) for part in err["loc"]]
    loc = ".".join(parts[:2]) if parts[0] == "hooks" and len(parts) > 1 else parts[0]
    if err["type"] == "extra_forbidden":
        return ValidationError(loc, "is not a recognized option")
    if loc.startswith("hooks."):
        return ValidationError(loc, "should be callable without arguments")
    return ValidationError(loc, _FIELD_MESSAGES.get(loc, err["msg"]))


# ----------------------------------------------------------------------
# Normalized spec
# ----------------------------------------------------------------------

class SpecStatus(str, Enum):
    PENDING = "pending"
    NO_CHANGES = "no changes"
    UPDATED = "updated"
    INSTALLED = "installed"
    REMOVED = "removed"
    ERROR = "error"


@dataclass
class Hooks:
    pre_create: Optional[Hook] = None
    post_create: Optional[Hook] = None
    pre_change: Optional[Hook] = None
    post_change: Optional[Hook] = None
    pre_delete: Optional[Hook] = None
    post_delete: Optional[Hook] = None

    def defined(self) -> Dict[str, Hook]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass
class Spec:
    """
    A plugin declaration plus the state the pipeline computes for it.

    `checkout` is a revision string, True (remote default branch), False
    (never check out) or None (not set, same as True). Computed fields start
    as None and are filled by pipeline stages.
    """
    source: str
    name: str
    checkout: Union[str, bool, None] = None
    track: Optional[str] = None
    hooks: Hooks = field(default_factory=Hooks)
    path: Optional[Path] = None

    # Computed by the pipeline
    head: Optional[str] = None
    default_branch: Optional[str] = None
    track_from: Optional[str] = None
    track_to: Optional[str] = None
    checkout_to: Optional[str] = None
    checkout_log: Optional[str] = None
    track_log: Optional[str] = None
    pending_log: Optional[str] = None

    status: SpecStatus = SpecStatus.PENDING
    error: str = ""
    warnings: str = ""

    @property
    def has_updates(self) -> bool:
        return self.checkout_to is not None and self.head != self.checkout_to

    def fresh(self) -> Spec:
        """Copy of the declared fields only, ready for a new pipeline run."""
        return Spec(
            source=self.source,
            name=self.name,
            checkout=self.checkout,
            track=self.track,
            hooks=self.hooks,
            path=self.path,
        )


def normalize(source: Any, options: Union[SpecOptions, Mapping[str, Any], None] = None) -> Spec:
    """
    Validate a raw plugin declaration and turn it into a Spec.

    Pure data transformation: no filesystem or network access.

    Raises:
        ValidationError: naming the first offending field
    """
    if not isinstance(source, str):
        raise ValidationError("source", "should be string")
    if source == "":
        raise ValidationError("source", "should not be empty")

    if options is None:
        opts = SpecOptions()
    elif isinstance(options, SpecOptions):
        opts = options
    elif isinstance(options, Mapping):
        try:
            opts = SpecOptions.model_validate(dict(options))
        except PydanticValidationError as e:
            raise _to_validation_error(e) from None
    else:
        raise ValidationError("options", "should be a table of options")

    if _USER_REPO.match(source):
        source = f"https://github.com/{source}"

    name = opts.name if opts.name is not None else source.rstrip("/").rsplit("/", 1)[-1]
    if name == "":
        raise ValidationError("name", "should not be empty")
    if "/" in name:
        raise ValidationError("name", 'should not contain "/"')

    hooks = Hooks(**{h: getattr(opts.hooks, h) for h in HOOK_NAMES})
    return Spec(source=source, name=name, checkout=opts.checkout, track=opts.track, hooks=hooks)


def run_hook(spec: Spec, hook_name: str, notifier: Optional[Notifier] = None) -> bool:
    """
    Call one of the spec's hooks if it is defined.

    A raising hook is reported as a warning and never propagates. Returns
    False only when the hook raised.
    """
    hook = getattr(spec.hooks, hook_name)
    if hook is None:
        return True
    try:
        hook()
    except Exception as e:
        if notifier is not None:
            notifier.notify(str(HookError(spec.name, hook_name, e)), Level.WARNING)
        return False
    return True


def record_job(spec: Spec, job: Job) -> None:
    """Copy a finished job's error and warnings onto its spec."""
    if job.failed:
        spec.error = job.error()
        spec.status = SpecStatus.ERROR
    warning = job.warning()
    if warning:
        spec.warnings = f"{spec.warnings}\n{warning}" if spec.warnings else warning


def report_specs(specs: Iterable[Spec], action: str, notifier: Optional[Notifier]) -> None:
    if notifier is None:
        return
    for spec in specs:
        if spec.warnings:
            notifier.notify(f"Warnings in `{spec.name}` during {action}\n{spec.warnings}", Level.WARNING)
        if spec.error:
            notifier.notify(f"Error in `{spec.name}` during {action}\n{spec.error}", Level.ERROR)
