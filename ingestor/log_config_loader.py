from datetime import UTC, datetime
import logging
from pathlib import Path
import sys
from typing import Any

import orjson

LOG_CONFIG_PATH = Path(__file__).parent / 'log_config.json'


def _load_log_config(config_path: Path = LOG_CONFIG_PATH) -> dict[str, Any]:
    try:
        data = orjson.loads(config_path.read_bytes())
    except FileNotFoundError as e:
        raise RuntimeError(f'Log config file not found: {config_path}') from e
    except orjson.JSONDecodeError as e:
        raise RuntimeError(f'Invalid JSON in log config file {config_path}: {e}') from e
    if not isinstance(data, dict):
        raise RuntimeError(
            f'Expected JSON object in {config_path}, got {type(data).__name__}'
        )
    return {
        'standard_fields': frozenset(data.get('standard_fields') or ()),
        'logger_levels': {
            name: logging.getLevelName(level.upper())
            for name, level in (data.get('logger_levels') or {}).items()
        },
    }


LOG_CONFIG: dict[str, Any] = _load_log_config()


class BaseFormatter(logging.Formatter):
    """Shared record layout: UTC timestamp, service identity, asyncio task."""

    def __init__(self, service_name: str, version: str):
        super().__init__()
        self.service_name = service_name
        self.version = version
        self.standard_fields: frozenset[str] = LOG_CONFIG['standard_fields']

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        moment = datetime.fromtimestamp(record.created, tz=UTC)
        return moment.isoformat(timespec='milliseconds')

    def _get_extra(self, record: logging.LogRecord) -> dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.standard_fields and not key.startswith('_')
        }

    def _get_base_record(self, record: logging.LogRecord) -> dict[str, Any]:
        base = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'service': self.service_name,
            'version': self.version,
            'logger': record.name,
            'message': record.getMessage(),
        }
        # worker tasks are named ingest-<source>
        task = getattr(record, 'taskName', None)
        if task:
            base['task'] = task
        return base


class JsonFormatter(BaseFormatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = self._get_base_record(record)
        entry.update(self._get_extra(record))
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return orjson.dumps(entry, default=str).decode('utf-8')


class TextFormatter(BaseFormatter):
    def format(self, record: logging.LogRecord) -> str:
        base = self._get_base_record(record)
        where = base['logger']
        if 'task' in base:
            where += f' ({base["task"]})'
        extra = ' '.join(f'[{k}={v}]' for k, v in self._get_extra(record).items())
        line = f'{base["timestamp"]} [{base["level"]:<8}] {where}: {base["message"]}'
        if extra:
            line += f' {extra}'
        if record.exc_info:
            line += f'\n{self.formatException(record.exc_info)}'
        return line


FORMATTERS: dict[str, type[BaseFormatter]] = {
    'json': JsonFormatter,
    'text': TextFormatter,
}


def setup_logging(
    service_name: str,
    level: str,
    log_format: str,
    version: str,
) -> None:
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    formatter_cls = FORMATTERS.get(log_format.lower(), TextFormatter)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter_cls(service_name=service_name, version=version))
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for logger_name, logger_level in LOG_CONFIG['logger_levels'].items():
        logging.getLogger(logger_name).setLevel(logger_level)
