from __future__ import annotations

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    root = logging.getLogger()
    resolved = getattr(logging, str(level or "INFO").upper(), logging.INFO)
    if not root.handlers:
        logging.basicConfig(level=resolved, format=_FORMAT)
    root.setLevel(resolved)
