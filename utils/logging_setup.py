import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(app):
    """Attach console (and optional rotating file) handlers to the root logger."""
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # create_app may run many times in one process (tests)
    if getattr(root, "_skillswap_configured", False):
        return

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    log_dir = app.config.get("LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

        combined = RotatingFileHandler(
            os.path.join(log_dir, "combined.log"), maxBytes=5 * 1024 * 1024, backupCount=3
        )
        combined.setFormatter(formatter)
        root.addHandler(combined)

        errors = RotatingFileHandler(
            os.path.join(log_dir, "error.log"), maxBytes=5 * 1024 * 1024, backupCount=3
        )
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        root.addHandler(errors)

    root._skillswap_configured = True
