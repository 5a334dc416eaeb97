import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Route service logs to stdout."""
    root = logging.getLogger()
    if not any(getattr(handler, "_bandhu_payments", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._bandhu_payments = True
        root.addHandler(handler)
    root.setLevel(level.upper())
