from __future__ import annotations

import logging
from pathlib import Path

DEFAULT_LOG_PATH = "logs/zpod-build.log"
FALLBACK_LOG_NAME = "zpod-build.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class BuildLogHandler(logging.FileHandler):
    """The build log file; its presence on the root logger marks logging as set up."""


def _open_build_log(log_path: str) -> BuildLogHandler:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return BuildLogHandler(log_path, encoding="utf-8")
    except OSError:
        # e.g. a read-only checkout
        return BuildLogHandler(str(Path.cwd() / FALLBACK_LOG_NAME), encoding="utf-8")


def configure_logging(log_path: str = DEFAULT_LOG_PATH, level: int = logging.INFO, console: bool = True) -> str:
    """Log to log_path (and stderr) and return the file actually written.

    Calling it again keeps the first setup.
    """

    root = logging.getLogger()
    root.setLevel(level)
    for h in root.handlers:
        if isinstance(h, BuildLogHandler):
            return h.baseFilename

    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    build_log = _open_build_log(log_path)
    handlers: list[logging.Handler] = [build_log]
    if console:
        handlers.append(logging.StreamHandler())
    for h in handlers:
        h.setFormatter(fmt)
        root.addHandler(h)

    logging.getLogger(__name__).info("Logging to %s", build_log.baseFilename)
    return build_log.baseFilename
