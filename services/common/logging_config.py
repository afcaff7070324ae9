"""
Structured logging for the relay.
JSON lines on stdout (and optionally a file) so the relay's own logs can be
shipped back into Datadog without a parsing pipeline.
"""
import logging
import os
import sys
from pythonjsonlogger import jsonlogger

LOG_FORMAT = '%(asctime)s %(name)s %(levelname)s %(message)s %(module)s %(lineno)d'

RENAMED_FIELDS = {
    'asctime': 'timestamp',
    'levelname': 'level',
    'module': 'file',
    'lineno': 'line',
}


def setup_logging(service_name: str, log_level: str = None) -> logging.Logger:
    """
    Configure a JSON logger for a relay component

    Args:
        service_name: Logger name, also stamped on every record as `service`
        log_level: Level override (default: LOG_LEVEL env var, else INFO)

    Returns:
        Configured logger instance
    """
    if log_level is None:
        log_level = os.getenv('LOG_LEVEL', 'INFO')
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(service_name)
    logger.setLevel(numeric_level)
    logger.handlers = []

    formatter = jsonlogger.JsonFormatter(
        LOG_FORMAT,
        rename_fields=RENAMED_FIELDS,
        static_fields={'service': service_name},
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = os.getenv('LOG_FILE')
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not open log file {log_file}: {e}")

    # stdout only; the root logger may be configured by the WSGI server
    logger.propagate = False

    return logger


def log_audit_event(logger: logging.Logger, event_type: str, **kwargs):
    """
    Log an audit record, e.g. one per relayed batch

    Args:
        logger: Logger instance
        event_type: Kind of audit event (e.g. 'batch_relayed')
        **kwargs: Extra fields for the record
    """
    logger.info('AUDIT_EVENT', extra={'audit': True, 'event_type': event_type, **kwargs})
