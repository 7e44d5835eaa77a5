"""Process entry point: logging setup and the uvicorn server."""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from card_intake.config import ConfigLoader, ConfigLoadError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEBUG_LOG_DIR = Path("data/debug_logs/server")

# Library loggers that are only interesting when they complain
NOISY_LOGGERS = ("httpx", "httpcore", "PIL", "multipart")

# Health checks hit this route every few seconds
QUIET_ACCESS_PATHS = frozenset({"/probe"})


class QuietAccessFilter(logging.Filter):
    """Drop uvicorn access log lines for health-check routes."""

    def __init__(self, paths=QUIET_ACCESS_PATHS):
        super().__init__()
        self.paths = frozenset(paths)

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access args: (client, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2]).split("?", 1)[0]
            return path not in self.paths
        return True


def setup_logging(debug: bool = False, log_dir: Path = DEBUG_LOG_DIR) -> None:
    """
    Configure root logging for the service.

    Records go to stdout. In debug mode the `card_intake` logger drops to
    DEBUG and a timestamped copy of the log is written under `log_dir`.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file = None
    if debug:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"card_intake_{datetime.now():%Y%m%d_%H%M%S}.log"
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers, force=True)
    logging.getLogger('card_intake').setLevel(logging.DEBUG if debug else logging.INFO)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    access_logger = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, QuietAccessFilter) for f in access_logger.filters):
        access_logger.addFilter(QuietAccessFilter())

    if log_file is not None:
        logging.getLogger(__name__).info(f"Debug log file: {log_file}")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="card-intake", description="Character card import service")
    parser.add_argument("--host", help="Override api_host from config/system.yaml")
    parser.add_argument("--port", type=int, help="Override api_port from config/system.yaml")
    parser.add_argument("--debug", action="store_true", help="Verbose logging plus a debug log file")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Load configuration and serve the API until interrupted."""
    args = parse_args(argv)

    try:
        system_config = ConfigLoader().load_system_config()
    except ConfigLoadError as e:
        # Fail before binding the port
        print(f"card-intake: {e}", file=sys.stderr)
        return 2

    debug = args.debug or system_config.debug
    host = args.host or system_config.api_host
    port = args.port or system_config.api_port

    setup_logging(debug=debug)
    logger = logging.getLogger(__name__)
    logger.info(f"Serving Card Intake on http://{host}:{port} (debug: {debug})")

    uvicorn.run(
        "card_intake.api.app:app",
        host=host,
        port=port,
        log_level="debug" if debug else "info",
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
