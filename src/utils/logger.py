import logging

from src.config.common_settings import LOG_LEVEL

# Shared application logger
logger = logging.getLogger("realm-feed-logger")
logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
logger.propagate = False  # uvicorn installs its own root handler

# Configure handler/format only once per process
if not logger.handlers:
    console_handler = logging.StreamHandler()
    formatter = logging.Formatter(
        fmt="%(asctime)s - [%(levelname)s] - %(name)s - %(funcName)s() - %(message)s"
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
