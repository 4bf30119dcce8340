"""Bunch of random utilities."""

import logging
import os
from pathlib import Path
from typing import Optional

import coloredlogs


logger = logging.getLogger(__name__)


def setup_console_logging(
    default_log_level="warning",
    simplified_logging=False,
    log_file: Path | None = None,
    std_out_log_level: Optional[int] = None,
    clear_log_file=True,
) -> logging.Logger:
    """Set up coloured log output.

    - Helper function to have nicer logging output in simulation scripts
    - `LOG_LEVEL` environment variable overrides the default level

    :param log_file:
        Output both console and this log file.

    :return:
        Root logger
    """

    level = os.environ.get("LOG_LEVEL", default_log_level).upper()
    numeric_level = getattr(logging, level, None)
    assert numeric_level, f"No level: {level}"

    if not std_out_log_level:
        std_out_log_level = numeric_level

    if simplified_logging:
        fmt = "%(message)s"
        date_fmt = "%H:%M:%S"
    else:
        fmt = "%(asctime)s %(name)-30s %(message)s"
        date_fmt = "%H:%M:%S"

    coloredlogs.install(level=std_out_log_level, fmt=fmt, date_fmt=date_fmt)

    if log_file:
        assert isinstance(log_file, Path), "log_file must be a Path"

        log_file.parent.mkdir(parents=True, exist_ok=True)

        # The file always gets at least INFO, env var controls only terminal output
        min_level = min(logging.INFO, numeric_level)
        mode = "w" if clear_log_file else "a"

        file_handler = logging.FileHandler(log_file, mode=mode, encoding="utf-8")
        file_handler.setLevel(min_level)
        file_handler.setFormatter(logging.Formatter(fmt, date_fmt))

        root = logging.getLogger()
        root.setLevel(min_level)
        root.addHandler(file_handler)

    return logging.getLogger()
