from __future__ import annotations

import logging

DEFAULT_FMT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup(level: int | str = logging.INFO) -> None:
    """Install a console handler on the root logger. Safe to call twice."""
    root = logging.getLogger()
    if getattr(root, "_tickstream_logging_installed", False):
        root.setLevel(level)
        return

    root.setLevel(level)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(DEFAULT_FMT))
    root.addHandler(handler)

    # Third-party noise
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    root._tickstream_logging_installed = True  # type: ignore[attr-defined]
