from datetime import date, datetime, UTC

import pytest

from gantt_planner import create_app
from gantt_planner.db import (SettingDB, TaskDB, db, last_sync, load_allocation, load_odoo_config, load_store,
                              record_sync, save_allocation, save_odoo_config, save_store)
from gantt_planner.models import Task, TaskStore
from gantt_planner.odoo import OdooConfig


@pytest.fixture()
def app():
    app = create_app(testing=True)
    with app.app_context():
        db.drop_all()
        db.create_all()
        yield app


def sample_store():
    return TaskStore([
        Task(id=1, name='Plan', resource='Roberto', start_date=date(2024, 11, 11), duration=3),
        Task(id=2, name='Build', resource='Roberto', start_date=date(2024, 11, 14), duration=4, original_duration=2,
             type='Sviluppo', dependencies=(1,), external_id=77, project_id=3, project_name='Website',
             stage='Todo', tags=('Pianificato', 'Urgent')),
    ])


def test_task_store_round_trip(app):
    store = sample_store()
    save_store(store)
    assert TaskDB.query.count() == 2
    assert load_store() == store


def test_save_store_replaces_previous_rows(app):
    save_store(sample_store())
    save_store(TaskStore([Task(id=9, name='Only', resource='Anna', start_date=date(2024, 11, 11), duration=1)]))
    loaded = load_store()
    assert loaded.ids() == [9]
    assert loaded.get(9).dependencies == ()
    assert loaded.get(9).tags == ()


def test_setting_crud(app):
    db.session.add(SettingDB(key='theme', value='dark'))
    db.session.commit()
    setting = db.session.get(SettingDB, 'theme')
    assert setting and setting.value == 'dark'
    # Update setting
    setting.value = 'light'
    db.session.commit()
    assert db.session.get(SettingDB, 'theme').value == 'light'
    # Delete setting
    db.session.delete(setting)
    db.session.commit()
    assert db.session.get(SettingDB, 'theme') is None


def test_odoo_config_persistence(app):
    defaults = {'url': 'https://env.example.com', 'database': 'env', 'username': 'u', 'api_key': 'k'}
    assert load_odoo_config(defaults).url == 'https://env.example.com'
    save_odoo_config(OdooConfig(url='https://odoo.example.com', database='prod', username='planner', api_key='s3'))
    stored = load_odoo_config(defaults)
    assert stored.database == 'prod'
    assert stored.api_key == 's3'


def test_allocation_and_last_sync(app):
    assert load_allocation() == 100
    save_allocation(70)
    assert load_allocation() == 70
    assert last_sync() is None
    when = datetime(2024, 11, 11, 9, 30, tzinfo=UTC)
    record_sync(when)
    assert last_sync() == when
