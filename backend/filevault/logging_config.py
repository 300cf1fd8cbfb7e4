import logging
import sys

HANDLER_NAME = "filevault-stdout"


def setup_logging(level="INFO"):
    """Configure root logger for the backend app. Safe to call more than once."""
    root = logging.getLogger()
    root.setLevel(level)
    if any(h.get_name() == HANDLER_NAME for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        "%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)

    # silence noisy libraries
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)
    logging.getLogger("cryptography").setLevel(logging.WARNING)
    logging.getLogger("python_multipart").setLevel(logging.WARNING)
