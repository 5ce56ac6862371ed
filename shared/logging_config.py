"""JSON logging with request and simulation-session context."""

import logging
import sys
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger

correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')
session_id_var: ContextVar[str] = ContextVar('session_id', default='')


class ContextFilter(logging.Filter):
    """Stamps every record with the active correlation and session ids"""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get('')
        if not getattr(record, 'session_id', ''):
            record.session_id = session_id_var.get('')
        return True


def setup_logging(service_name: str, level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(correlation_id)s %(session_id)s %(message)s',
        rename_fields={
            'asctime': 'timestamp',
            'name': 'logger',
            'levelname': 'level',
        }
    ))
    handler.addFilter(ContextFilter())
    root.addHandler(handler)
    logging.info(f"{service_name} logging configured", extra={"service": service_name})


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def set_session_id(session_id: str) -> None:
    """Binds a simulation session to the current context (inherited by tasks spawned from it)"""
    session_id_var.set(session_id)
