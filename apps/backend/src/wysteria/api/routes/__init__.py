from __future__ import annotations

import importlib
import pkgutil
from collections.abc import Iterator

from fastapi import APIRouter

__all__ = ["load_routers"]


def load_routers(package: str = __name__) -> Iterator[APIRouter]:
    """Yield the ``router`` of every public module in ``package``, by name."""

    package_module = importlib.import_module(package)
    module_names = sorted(
        info.name
        for info in pkgutil.iter_modules(package_module.__path__)
        if not info.name.startswith("_")
    )

    for name in module_names:
        module = importlib.import_module(f"{package}.{name}")
        router = getattr(module, "router", None)
        if isinstance(router, APIRouter):
            yield router
