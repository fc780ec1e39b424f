"""Process entry point: ``wysteria-server``."""

from __future__ import annotations

import os

import uvicorn

from wysteria.core.config import Settings, get_settings


def resolve_workers(settings: Settings) -> int:
    """One worker per CPU in production, a single process elsewhere."""

    if settings.workers is not None:
        return settings.workers
    if settings.is_production:
        return os.cpu_count() or 1
    return 1


def main() -> None:
    settings = get_settings()
    workers = resolve_workers(settings)

    # With more than one worker uvicorn supervises the processes and replaces
    # any that exit unexpectedly.
    uvicorn.run(
        "wysteria.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=workers,
        reload=settings.is_development and workers == 1,
        log_config=None,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )


if __name__ == "__main__":
    main()
