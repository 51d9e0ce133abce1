# git.py
# Command templates for every Git interaction plugdeps performs.
# Commands are plain argv lists: they are never passed through a shell, and
# their output is meant to be parsed by the pipeline stages.

from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional


def _clone(source: str, path: str) -> List[str]:
    return [
        "clone",
        "--quiet",
        "--filter=blob:none",
        "--recurse-submodules",
        "--origin",
        "origin",
        source,
        path,
    ]


def _stash(timestamp: str) -> List[str]:
    return ["stash", "--quiet", "--message", f"(plugdeps) {timestamp} Stash before checkout"]


def _log(from_rev: Optional[str], to_rev: Optional[str]) -> Optional[List[str]]:
    if not from_rev or not to_rev or from_rev == to_rev:
        return None
    # `%m` marks the side of the symmetric range a commit belongs to
    return [
        "log",
        "--pretty=format:%m %h | %s%d",
        "--topo-order",
        "--decorate-refs=refs/tags",
        f"{from_rev}...{to_rev}",
    ]


GIT_ARGS: Dict[str, Callable[..., Optional[List[str]]]] = {
    "clone": _clone,
    "stash": _stash,
    "checkout": lambda target: ["checkout", "--quiet", target],
    # `--ff-only` never creates merge commits on top of local history
    "merge_ff": lambda branch: ["merge", "--quiet", "--ff-only", f"origin/{branch}"],
    # `--tags --force` syncs conflicting tags with remote
    "fetch": lambda: ["fetch", "--quiet", "--tags", "--force", "--recurse-submodules=yes", "origin"],
    "set_origin": lambda source: ["remote", "set-url", "origin", source],
    "get_default_origin_branch": lambda: ["rev-parse", "--abbrev-ref", "origin/HEAD"],
    # Prints the branch name only if it exists on remote
    "is_origin_branch": lambda name: [
        "branch", "--list", "--all", "--format=%(refname:short)", f"origin/{name}",
    ],
    # `rev-list -1` gives the commit of a revision (`rev-parse` would give the
    # tag object hash for annotated tags)
    "get_hash": lambda rev: ["rev-list", "-1", rev],
    "log": _log,
    "reset_fetch_head": lambda: ["update-ref", "--no-deref", "FETCH_HEAD", "HEAD"],
}


def git_cmd(name: str, *args: Optional[str]) -> List[str]:
    """
    Build the full argv for a named git command.

    Returns an empty list when the template decides there is nothing to run
    (for example a log over an empty range). The scheduler treats an empty
    command as an instantly finished job.
    """
    args_list = GIT_ARGS[name](*args)
    if args_list is None:
        return []
    # `gc.auto=0` avoids "Auto packing..." messages in stderr
    return ["git", "-c", "gc.auto=0", *args_list]


def strip_origin(ref: str) -> str:
    return ref[len("origin/"):] if ref.startswith("origin/") else ref


def timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
