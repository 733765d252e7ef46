"""Read-only client for the Odoo project backend.

Only lookup methods are ever sent (search, read, ...); anything that would write
to the backend is refused before a request is built.
"""
import json
import logging
import math
import time
from collections import namedtuple
from dataclasses import asdict, dataclass, replace
from datetime import timedelta
from http.cookiejar import CookieJar
from urllib import error, request

from .models import DEFAULT_TASK_TYPE
from .workdays import format_date, parse_date, parse_datetime, today as current_day

logger = logging.getLogger(__name__)

READ_ONLY_METHODS = ('search', 'read', 'search_read', 'fields_get', 'name_search')
TASK_FIELDS = [
    'name',
    'user_ids',
    'date_start',
    'date_end',
    'date_deadline',
    'project_id',
    'stage_id',
    'depend_on_ids',
    'planned_hours',
    'tag_ids',
]
HOURS_PER_DAY = 8

DiagnosticStep = namedtuple('DiagnosticStep', ['name', 'ok', 'message', 'elapsed_ms', 'data'])


class OdooError(Exception):
    pass


class OdooAccessError(OdooError):
    pass


class OdooConfigError(OdooError):
    def __init__(self, errors):
        super().__init__('; '.join(f'{k}: {v}' for k, v in errors.items()))
        self.errors = errors


@dataclass(frozen=True)
class OdooConfig:
    url: str = ''
    database: str = ''
    username: str = ''
    api_key: str = ''

    def validate(self):
        errors = {}
        url = (self.url or '').strip()
        if not url:
            errors['url'] = 'Odoo URL is required'
        elif not url.startswith(('http://', 'https://')):
            errors['url'] = 'URL must start with http:// or https://'
        if not (self.database or '').strip():
            errors['database'] = 'Database name is required'
        if not (self.username or '').strip():
            errors['username'] = 'Username is required'
        if not (self.api_key or '').strip():
            errors['api_key'] = 'API key is required'
        return errors

    def cleaned(self):
        return replace(self, url=(self.url or '').strip().rstrip('/'),
                       database=(self.database or '').strip(),
                       username=(self.username or '').strip(),
                       api_key=(self.api_key or '').strip())

    def is_complete(self):
        return not self.validate()

    def to_dict(self, hide_secret=True):
        data = asdict(self)
        if hide_secret and data['api_key']:
            data['api_key'] = '********'
        return data

    @classmethod
    def from_mapping(cls, data):
        return cls(url=data.get('url') or '', database=data.get('database') or '',
                   username=data.get('username') or '', api_key=data.get('api_key') or '')


class OdooClient:
    def __init__(self, config, timeout=30, retries=2, opener=None):
        errors = config.validate()
        if errors:
            raise OdooConfigError(errors)
        self.config = config.cleaned()
        self.timeout = timeout
        self.retries = max(0, int(retries))
        self.opener = opener or request.build_opener(request.HTTPCookieProcessor(CookieJar()))
        self.uid = None
        self.session_id = None
        self._request_id = 0

    def _post(self, path, params, method=None):
        self._request_id += 1
        body = {'jsonrpc': '2.0', 'params': params, 'id': self._request_id}
        if method:
            body['method'] = method
        req = request.Request(self.config.url + path, data=json.dumps(body).encode('utf-8'), method='POST')
        req.add_header('Content-Type', 'application/json')

        attempt = 0
        while True:
            t0 = time.monotonic()
            try:
                with self.opener.open(req, timeout=self.timeout) as resp:
                    text = resp.read().decode('utf-8', errors='replace')
                break
            except error.HTTPError as e:
                elapsed_ms = int((time.monotonic() - t0) * 1000)
                raise OdooError(f'Odoo HTTP {e.code} on {path} after {elapsed_ms}ms') from e
            except (error.URLError, TimeoutError) as e:
                elapsed_ms = int((time.monotonic() - t0) * 1000)
                if attempt >= self.retries:
                    raise OdooError(f'Odoo connection error on {path} after {elapsed_ms}ms: {e}') from e
                attempt += 1
                logger.warning('Connection to %s failed (%s), retry %d/%d', path, e, attempt, self.retries)

        try:
            payload = json.loads(text)
        except ValueError as e:
            raise OdooError(f'Odoo returned a non JSON response on {path}') from e
        if payload.get('error'):
            err = payload['error']
            message = (err.get('data') or {}).get('message') or err.get('message') or 'Odoo API error'
            raise OdooError(message)
        return payload.get('result')

    def authenticate(self):
        logger.info('Authenticating on %s (db=%s)', self.config.url, self.config.database)
        result = self._post('/web/session/authenticate', {
            'db': self.config.database,
            'login': self.config.username,
            'password': self.config.api_key,
        })
        if not result or not result.get('uid'):
            raise OdooError('Authentication failed')
        self.uid = result['uid']
        self.session_id = result.get('session_id')
        logger.info('Authenticated', extra={'data': {'uid': self.uid}})
        return self.uid

    def call(self, model, method, args=None, kwargs=None):
        if method not in READ_ONLY_METHODS:
            raise OdooAccessError(f"Method '{method}' is not allowed. This client is read-only.")
        if not self.uid:
            self.authenticate()
        return self._post('/web/dataset/call_kw', {
            'model': model,
            'method': method,
            'args': args or [],
            'kwargs': kwargs or {},
        }, method='call')

    def search_tags_by_name(self, name):
        return self.call('project.tags', 'search', [[['name', 'ilike', name]]]) or []

    def fetch_tasks(self, project_id=None, tag_filter='Pianificato'):
        domain = []
        if project_id:
            domain.append(['project_id', '=', project_id])
        if tag_filter:
            tag_ids = self.search_tags_by_name(tag_filter)
            if tag_ids:
                domain.append(['tag_ids', 'in', tag_ids])
            else:
                logger.warning('No tags found containing "%s"', tag_filter)
        task_ids = self.call('project.task', 'search', [domain])
        if not task_ids:
            logger.info('No tasks matched', extra={'data': {'domain': domain}})
            return []
        records = self.call('project.task', 'read', [task_ids], {'fields': TASK_FIELDS})
        logger.info('Fetched %d tasks', len(records))
        return records

    def resolve_names(self, model, ids):
        if not ids:
            return {}
        rows = self.call(model, 'read', [sorted(ids)], {'fields': ['name']}) or []
        return {row['id']: row.get('name') for row in rows}

    def get_formatted_tasks(self, project_id=None, tag_filter='Pianificato', today=None):
        records = self.fetch_tasks(project_id=project_id, tag_filter=tag_filter)
        # plain id lists (no [id, name] pairs) need a second lookup
        user_ids = {u for r in records for u in (r.get('user_ids') or []) if isinstance(u, int)}
        tag_ids = {t for r in records for t in (r.get('tag_ids') or []) if isinstance(t, int)}
        user_names = self.resolve_names('res.users', user_ids)
        tag_names = self.resolve_names('project.tags', tag_ids)
        return [transform_task(r, today=today, user_names=user_names, tag_names=tag_names) for r in records]

    def diagnose(self):
        """Step through authentication, tag search and task search, reporting each."""
        steps = []

        def run(name, fn):
            t0 = time.monotonic()
            try:
                data = fn()
            except OdooError as e:
                elapsed = int((time.monotonic() - t0) * 1000)
                logger.error('%s failed: %s', name, e)
                steps.append(DiagnosticStep(name, False, str(e), elapsed, None))
                return False
            elapsed = int((time.monotonic() - t0) * 1000)
            steps.append(DiagnosticStep(name, True, 'ok', elapsed, data))
            return True

        if run('authentication', lambda: {'uid': self.authenticate()}):
            run('tag_search', lambda: {'tag_ids': self.search_tags_by_name('Pianificato')})
            run('task_search', lambda: {'task_ids': self.call('project.task', 'search', [[]], {'limit': 5})})
        return steps


def _pair_name(value, names=None):
    if isinstance(value, (list, tuple)) and len(value) > 1:
        return value[1]
    if names and value in names:
        return names[value]
    return None


def _pair_id(value):
    if isinstance(value, (list, tuple)) and value:
        return value[0]
    return value or None


def _planned_days(record):
    hours = record.get('planned_hours') or 0
    if not math.isfinite(hours):
        hours = 0
    return max(1, math.ceil(hours / HOURS_PER_DAY))


def transform_task(record, today=None, user_names=None, tag_names=None):
    """Map one ``project.task`` record onto the planner's task fields."""
    users = record.get('user_ids') or []
    resource = (_pair_name(users[0], user_names) if users else None) or 'Unassigned'

    date_start = record.get('date_start')
    date_end = record.get('date_end')
    deadline = record.get('date_deadline')
    duration = 1
    start = today or current_day()
    if date_start and date_end:
        start = parse_date(date_start)
        delta = abs(parse_datetime(date_end) - parse_datetime(date_start))
        duration = max(1, math.ceil(delta.total_seconds() / 86400))
    elif date_start:
        start = parse_date(date_start)
        duration = _planned_days(record)
    elif deadline:
        duration = _planned_days(record)
        start = parse_date(deadline) - timedelta(days=duration)

    tags = [_pair_name(t, tag_names) for t in record.get('tag_ids') or []]
    return {
        'name': record.get('name') or 'Untitled Task',
        'resource': resource,
        'start_date': format_date(start),
        'duration': duration,
        'type': DEFAULT_TASK_TYPE,
        'dependencies': list(record.get('depend_on_ids') or []),
        'external_id': record.get('id'),
        'project_id': _pair_id(record.get('project_id')),
        'project_name': _pair_name(record.get('project_id')),
        'stage': _pair_name(record.get('stage_id')),
        'tags': [t for t in tags if t],
    }
