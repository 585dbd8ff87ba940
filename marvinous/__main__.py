"""Entry point: python -m marvinous"""

import json
import logging
import os
import sys
from pathlib import Path

from marvinous.core.config import MarvinousConfig

STRUCTURED_FIELDS = ("event", "severity", "attempt", "category", "exit_code", "path")


class StructuredFormatter(logging.Formatter):
    """Formatter that appends structured extra fields as JSON when present."""
    def format(self, record):
        base = super().format(record)
        event = getattr(record, 'event', None)
        if event:
            extras = {k: v for k, v in record.__dict__.items() if k in STRUCTURED_FIELDS}
            base += f" | {json.dumps(extras, default=str)}"
        return base


def setup_logging(config: MarvinousConfig):
    """Configure logging with an optional file handler plus console."""
    fmt = StructuredFormatter(
        fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers = []
    if config.general.log_file:
        log_path = Path(config.general.log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(fmt)
        handlers.append(file_handler)

    # Console when interactive, or when there's nowhere else to log (journald picks up stderr)
    if not handlers or sys.stderr.isatty():
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(fmt)
        handlers.append(console_handler)

    level_name = os.environ.get("MARVINOUS_LOG_LEVEL", config.general.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        handlers=handlers,
        force=True,
    )


def main():
    from marvinous.cli import main as cli_main
    sys.exit(cli_main())


if __name__ == "__main__":
    main()
