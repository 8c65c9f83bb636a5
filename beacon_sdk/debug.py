import sys
import logging

from beacon_sdk.client import _client_init_debug
from beacon_sdk.hub import Hub
from beacon_sdk.utils import logger

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from logging import LogRecord


class _HubBasedClientFilter(logging.Filter):
    def filter(self, record: "LogRecord") -> bool:
        if _client_init_debug.get(False):
            return True

        client = Hub.current.client
        if client is not None:
            return bool(client.options["debug"])
        return False


def init_debug_support() -> None:
    if not logger.handlers:
        configure_logger()


def configure_logger() -> None:
    _handler = logging.StreamHandler(sys.stderr)
    _handler.setFormatter(logging.Formatter(" [beacon] %(levelname)s: %(message)s"))
    logger.addHandler(_handler)
    logger.setLevel(logging.DEBUG)
    logger.addFilter(_HubBasedClientFilter())
