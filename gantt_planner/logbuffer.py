"""In-memory log capture feeding the diagnostic log viewer."""
import json
import logging
from collections import deque
from datetime import datetime, UTC

LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


class LogBuffer(logging.Handler):
    """Keeps the most recent records as plain dicts for the log viewer."""

    def __init__(self, capacity=1000, level=logging.DEBUG):
        super().__init__(level)
        self.records = deque(maxlen=capacity)

    def emit(self, record):
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        self.records.append({
            'timestamp': datetime.fromtimestamp(record.created, UTC).isoformat(),
            'level': record.levelname,
            'category': record.name.rsplit('.', 1)[-1].upper(),
            'message': message,
            'data': getattr(record, 'data', None),
        })

    def entries(self, level=None, category=None):
        out = list(self.records)
        if level and level.upper() != 'ALL':
            out = [e for e in out if e['level'] == level.upper()]
        if category:
            out = [e for e in out if e['category'] == category.upper()]
        return out

    def summary(self):
        counts = {lvl.lower(): 0 for lvl in LEVELS}
        for e in self.records:
            key = e['level'].lower()
            counts[key] = counts.get(key, 0) + 1
        counts['total'] = len(self.records)
        return counts

    def export_json(self):
        return json.dumps(list(self.records), indent=2, ensure_ascii=False, default=str)

    def clear(self):
        self.records.clear()


def init_app(app, logger_name='gantt_planner'):
    buffer = LogBuffer(capacity=app.config.get('LOG_BUFFER_SIZE', 1000))
    logger = logging.getLogger(logger_name)
    # one buffer per app; drop the one a previous app instance left behind
    for handler in [h for h in logger.handlers if isinstance(h, LogBuffer)]:
        logger.removeHandler(handler)
    logger.addHandler(buffer)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.DEBUG if app.debug else logging.INFO)
    app.extensions['log_buffer'] = buffer
    return buffer


def get_buffer(app):
    return app.extensions['log_buffer']
