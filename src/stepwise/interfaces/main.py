"""Unified entry point: dispatches to the appropriate mode.

Reads ``STEPWISE_MODE`` from the environment:

- ``api`` (default): HTTP API served by uvicorn
- ``worker``: background job workers for the review pipeline
"""

from __future__ import annotations

import logging
import os
import sys

from stepwise.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_VALID_MODES = {"api", "worker"}


def run_api() -> None:
    import uvicorn

    from stepwise.interfaces.api import create_app
    from stepwise.interfaces.bootstrap import build_container
    from stepwise.interfaces.config import AppConfig

    config = AppConfig.from_env()
    app = create_app(build_container(config))
    uvicorn.run(app, host=config.api_host, port=config.api_port)


def run_worker() -> None:
    from stepwise.interfaces.bootstrap import build_container
    from stepwise.interfaces.config import AppConfig

    container = build_container(AppConfig.from_env())
    try:
        container.worker_pool().run()
    finally:
        container.database.dispose()


def main() -> None:
    """Dispatch to the appropriate entry point based on STEPWISE_MODE."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    mode = os.environ.get("STEPWISE_MODE", "api").strip().lower()

    if mode not in _VALID_MODES:
        valid = ", ".join(sorted(_VALID_MODES))
        logger.error("Unknown mode: %r (valid: %s)", mode, valid)
        sys.exit(1)

    try:
        if mode == "api":
            run_api()
        else:
            run_worker()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
