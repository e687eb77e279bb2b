# core/schema_registry.py
from __future__ import annotations
from typing import Callable, List, Tuple
from sqlalchemy.engine import Engine
import importlib
import logging
import pkgutil
from pathlib import Path

log = logging.getLogger(__name__)

# Schema installer type
SchemaInstaller = Callable[[Engine], None]

# Registry: (name, installer_func)
_REGISTRY: List[Tuple[str, SchemaInstaller]] = []

def register(
    name: str | SchemaInstaller, installer: SchemaInstaller | None = None
) -> SchemaInstaller | Callable[[SchemaInstaller], SchemaInstaller]:
    """
    Registers a schema installer function.
    Can be used as a decorator (@register) or a function call (register("name", fn)).
    """
    # Used as @register("name")
    if isinstance(name, str) and installer is None:
        def decorator(fn: SchemaInstaller) -> SchemaInstaller:
            _add(name, fn)
            return fn
        return decorator

    # Used as @register
    elif callable(name) and installer is None:
        fn = name
        _add(fn.__name__, fn)
        return fn

    # Used as register("name", fn)
    elif isinstance(name, str) and callable(installer):
        _add(name, installer)
        return installer

    raise TypeError("Invalid usage of @register")

def _add(name: str, fn: SchemaInstaller) -> None:
    # re-imports (reloads in tests) must not install twice
    if any(existing == name for existing, _ in _REGISTRY):
        return
    _REGISTRY.append((name, fn))

def registered_names() -> List[str]:
    return [name for name, _ in _REGISTRY]

def run_all(engine: Engine) -> None:
    """
    Runs all registered schema installers in order.

    A failing installer aborts the bootstrap: every workflow depends on
    its tables being present.
    """
    log.info("SchemaRegistry: running %d installers", len(_REGISTRY))
    for name, installer_fn in _REGISTRY:
        log.debug("Applying schema: %s", name)
        try:
            installer_fn(engine)
        except Exception:
            log.exception("Schema installer %s failed", name)
            raise
    log.info("SchemaRegistry: all installers complete")

def auto_discover(
    start_path: str | Path = "schemas",
    root_package: str | None = None,
) -> None:
    """
    Dynamically imports all modules in a directory to trigger @register decorators.

    :param start_path: The directory path to start discovery (e.g., "schemas").
    :param root_package: The parent package name (optional).
    """
    if isinstance(start_path, str):
        start_path = Path(start_path)

    if not start_path.is_dir():
        log.warning("Schema auto_discover: %s is not a directory, skipping", start_path)
        return

    if root_package:
        base_import_name = f"{root_package}.{start_path.name}"
    else:
        base_import_name = start_path.name

    for _, module_name, is_pkg in sorted(
        pkgutil.walk_packages(path=[str(start_path)], prefix=f"{base_import_name}."),
        key=lambda item: item[1],
    ):
        if is_pkg:
            continue
        importlib.import_module(module_name)
        log.debug("Discovered schema module %s", module_name)
