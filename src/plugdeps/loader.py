# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, List

from .errors import ValidationError
from .session import Session
from .spec import Spec


def load_plugins(path: str | Path, session: Session) -> List[Spec]:
    """
    Register plugins declared in a python file.

    The file must define either:
      - plugins() -> list
      - PLUGINS = [...]

    Each item is a `Spec`, a source string, or a `(source, options)` tuple.

    Returns:
      The registered specs, in file order
    """
    file_path = Path(path).expanduser().resolve()
    if not file_path.exists():
        raise FileNotFoundError(f"Plugins file not found: {file_path}")
    if file_path.suffix != ".py":
        raise ValueError(f"Plugins file must be a .py file, got: {file_path.name}")

    globals_dict = runpy.run_path(str(file_path), run_name=f"plugdeps_plugins_{file_path.stem}")

    if "plugins" in globals_dict and callable(globals_dict["plugins"]):
        items = globals_dict["plugins"]()
    elif "PLUGINS" in globals_dict:
        items = globals_dict["PLUGINS"]
    else:
        raise TypeError("Plugins file must define plugins() -> list or PLUGINS = [...].")

    if not isinstance(items, (list, tuple)):
        raise TypeError(f"Plugins should be a list, got {type(items).__name__}.")

    return [_register(session, item) for item in items]


def _register(session: Session, item: Any) -> Spec:
    if isinstance(item, Spec):
        return session.register(item)
    if isinstance(item, tuple):
        if len(item) != 2:
            raise ValidationError("plugins", "entries should be (source, options) pairs")
        return session.add(item[0], item[1])
    return session.add(item)
