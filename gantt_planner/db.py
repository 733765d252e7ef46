import json
from datetime import datetime, UTC

from flask_sqlalchemy import SQLAlchemy

from .models import Task, TaskStore
from .odoo import OdooConfig

# SQLAlchemy instance
db = SQLAlchemy()

ODOO_CONFIG_KEY = 'odoo_config'
ALLOCATION_KEY = 'allocation_percentage'
LAST_SYNC_KEY = 'last_sync'


class TaskDB(db.Model):
    __tablename__ = 'tasks'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(300), nullable=False)
    resource = db.Column(db.String(120), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    duration = db.Column(db.Integer, nullable=False)
    original_duration = db.Column(db.Integer, nullable=False)
    type = db.Column(db.String(50))
    dependencies = db.Column(db.String(500))  # ';'-joined task ids
    external_id = db.Column(db.Integer, index=True)
    project_id = db.Column(db.Integer)
    project_name = db.Column(db.String(300))
    stage = db.Column(db.String(200))
    tags = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(UTC))

    def to_task(self):
        return Task(
            id=self.id,
            name=self.name,
            resource=self.resource,
            start_date=self.start_date,
            duration=self.duration,
            original_duration=self.original_duration,
            type=self.type,
            dependencies=_split(self.dependencies, int),
            external_id=self.external_id,
            project_id=self.project_id,
            project_name=self.project_name,
            stage=self.stage,
            tags=_split(self.tags),
        )

    @classmethod
    def from_task(cls, t):
        return cls(
            id=t.id,
            name=t.name,
            resource=t.resource,
            start_date=t.start_date,
            duration=t.duration,
            original_duration=t.original_duration,
            type=t.type,
            dependencies=';'.join(str(d) for d in t.dependencies),
            external_id=t.external_id,
            project_id=t.project_id,
            project_name=t.project_name,
            stage=t.stage,
            tags=';'.join(t.tags),
        )


class SettingDB(db.Model):
    __tablename__ = 'settings'
    key = db.Column(db.String(100), primary_key=True)
    value = db.Column(db.String(2000))


def _split(raw, cast=str):
    return tuple(cast(p) for p in (raw or '').split(';') if p.strip())


def load_store():
    rows = TaskDB.query.order_by(TaskDB.id).all()
    return TaskStore(r.to_task() for r in rows)


def save_store(store):
    """Replace the persisted task set with ``store`` in a single transaction."""
    try:
        TaskDB.query.delete()
        db.session.add_all(TaskDB.from_task(t) for t in store)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def get_setting(key, default=None):
    s = db.session.get(SettingDB, key)
    return s.value if s is not None else default


def set_setting(key, value):
    s = db.session.get(SettingDB, key)
    if s is None:
        s = SettingDB(key=key)
        db.session.add(s)
    s.value = value
    db.session.commit()


def load_odoo_config(defaults=None):
    raw = get_setting(ODOO_CONFIG_KEY)
    if raw:
        try:
            return OdooConfig.from_mapping(json.loads(raw))
        except ValueError:
            pass
    return OdooConfig.from_mapping(defaults or {})


def save_odoo_config(config):
    set_setting(ODOO_CONFIG_KEY, json.dumps(config.to_dict(hide_secret=False)))


def load_allocation(default=100):
    try:
        return int(get_setting(ALLOCATION_KEY, default))
    except (TypeError, ValueError):
        return default


def save_allocation(percentage):
    set_setting(ALLOCATION_KEY, str(percentage))


def record_sync(when=None):
    set_setting(LAST_SYNC_KEY, (when or datetime.now(UTC)).isoformat())


def last_sync():
    raw = get_setting(LAST_SYNC_KEY)
    return datetime.fromisoformat(raw) if raw else None
