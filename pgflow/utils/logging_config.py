"""
Logging setup for pgflow runs.

Everything at ``level`` and above goes to the run log; only warnings and
errors reach the terminal, where task outputs and the summary are printed.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_PATH = Path("pgflow_data") / "pgflow.log"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Route logging to ``log_file`` (default pgflow_data/pgflow.log) and stderr.

    Calling it again replaces the handlers of the previous call.
    """
    log_path = LOG_PATH if log_file is None else Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper()))
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    formatter = logging.Formatter(LOG_FORMAT)
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setFormatter(formatter)
    root.addHandler(fh)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.WARNING)
    ch.setFormatter(formatter)
    root.addHandler(ch)

    return logging.getLogger("pgflow")
