import logging
import os
import sys

from pythonjsonlogger.json import JsonFormatter

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
LOG_JSON = os.getenv('LOG_JSON', '0').lower() in ('1', 'true', 'yes')

_TEXT_FORMAT = (
    '%(asctime)s - %(name)s:%(levelname)s: %(filename)s:%(lineno)s - %(message)s'
)
_JSON_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s'


def _get_formatter() -> logging.Formatter:
    """Return the JSON formatter when LOG_JSON is enabled, plain text otherwise.

    Structured fields passed through ``extra`` are emitted as top level JSON
    keys by the JSON formatter.
    """
    if LOG_JSON:
        return JsonFormatter(_JSON_FORMAT, rename_fields={'levelname': 'level'})
    return logging.Formatter(_TEXT_FORMAT)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(_get_formatter())
        logger.addHandler(handler)
    logger.setLevel(LOG_LEVEL)
    logger.propagate = False
    return logger


prompt_library_logger = get_logger('prompt_library')

# Audit entries go to their own logger so deployments can route them apart
audit_logger = get_logger('prompt_library.audit')
