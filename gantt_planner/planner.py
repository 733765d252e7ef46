import io
import logging
from datetime import timedelta

import matplotlib
matplotlib.use('Agg')  # Use non-GUI backend for server
import matplotlib.dates as mdates
import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
from flask import (Blueprint, Response, current_app, flash, jsonify, make_response, redirect,
                   render_template, request, url_for)
from flask_login import login_required

from . import csv_io, scheduling, timeline
from .db import (last_sync, load_allocation, load_odoo_config, load_store, record_sync,
                 save_allocation, save_store)
from .models import ALL, TaskRequest
from .odoo import OdooClient, OdooConfigError, OdooError
from .sync import sync
from .workdays import fits_calendar, format_date, parse_date, today as tz_today

logger = logging.getLogger(__name__)

planner_bp = Blueprint('planner', __name__)

ERROR_STATUS = {
    'validation': 400,
    'not_found': 404,
    'empty_input': 400,
}
TYPE_COLORS = {'Sviluppo': '#22c55e'}
DEFAULT_COLOR = '#3b82f6'
WEEKEND_COLOR = '#f3f4f6'


def _today():
    return tz_today(current_app.config.get('PLANNER_TIMEZONE'))


def _wants_json():
    return request.is_json or request.accept_mimetypes.best == 'application/json'


def _payload():
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form


def _fail(error):
    status = ERROR_STATUS.get(error.kind, 400)
    if _wants_json():
        return jsonify({'success': False, 'error': error.message, 'kind': error.kind}), status
    flash(error.message)
    return redirect(url_for('planner.index'))


def _done(message, **data):
    if _wants_json():
        return jsonify({'success': True, 'message': message, **data})
    flash(message)
    return redirect(url_for('planner.index'))


def _parse_week(raw):
    if not raw:
        return None
    try:
        week = parse_date(raw)
    except ValueError:
        return None
    return week if fits_calendar(week, 7) else None


def build_view(store, resource=ALL, task_type=ALL, granularity='day', week=None, today=None):
    """Everything the chart needs: filtered tasks, visible span, header cells, bars."""
    today = today or _today()
    granularity = timeline.Granularity.parse(granularity)
    visible = store.filter(resource=resource, task_type=task_type)
    rng = timeline.compute_range(visible, granularity, explicit_week=week, today=today)
    dates = timeline.dates_in(rng)
    summary = None
    if resource and resource != ALL:
        summary = scheduling.resource_summary(store, resource, today=today)
    return {
        'tasks': list(visible),
        'range': rng,
        'dates': dates,
        'granularity': granularity,
        'column_width': timeline.compute_column_width(granularity),
        'headers': timeline.group_header_labels(dates, granularity),
        'bars': {t.id: timeline.task_bar(t, rng.min_date, granularity) for t in visible},
        'weekends': timeline.weekend_columns(dates),
        'summary': summary,
    }


def _task_types(store):
    configured = list(current_app.config['TASK_TYPES'])
    # imported or synced tasks may carry types outside the configured set
    return configured + [t for t in store.types() if t not in configured]


def _filters():
    return {
        'resource': request.args.get('resource', ALL),
        'task_type': request.args.get('type', ALL),
        'granularity': request.args.get('granularity', 'day'),
        'week': _parse_week(request.args.get('week')),
    }


@planner_bp.route('/')
@login_required
def index():
    store = load_store()
    filters = _filters()
    view = build_view(store, **filters)
    return render_template(
        'planner.html',
        view=view,
        filters=filters,
        all_tasks=list(store),
        resources=[ALL] + store.resources(),
        types=[ALL] + _task_types(store),
        task_types=current_app.config['TASK_TYPES'],
        allocation=load_allocation(),
        allocation_choices=current_app.config['ALLOCATION_CHOICES'],
        granularities=[g.value for g in timeline.Granularity],
        last_sync=last_sync(),
        day_width=timeline.DAY_WIDTH,
    )


@planner_bp.route('/tasks_json')
@login_required
def tasks_json():
    store = load_store().filter(resource=request.args.get('resource'), task_type=request.args.get('type'))
    return jsonify(store.to_list())


@planner_bp.route('/timeline_json')
@login_required
def timeline_json():
    raw_week = request.args.get('week')
    filters = _filters()
    if raw_week and filters['week'] is None:
        return jsonify({'success': False, 'error': f'Invalid week: {raw_week}'}), 400
    view = build_view(load_store(), **filters)
    rng = view['range']
    return jsonify({
        'min_date': format_date(rng.min_date),
        'max_date': format_date(rng.max_date),
        'granularity': view['granularity'].value,
        'column_width': view['column_width'],
        'headers': [h._asdict() for h in view['headers']],
        'weekends': view['weekends'],
        'tasks': [dict(t.to_dict(), bar=view['bars'][t.id]._asdict()) for t in view['tasks']],
    })


@planner_bp.route('/slot/<resource>')
@login_required
def slot(resource):
    store = load_store()
    day = _today()
    found = scheduling.find_next_available_slot(store, resource, today=day)
    summary = scheduling.resource_summary(store, resource, today=day)
    return jsonify({
        'resource': resource,
        'date': format_date(found.date),
        'after_task_id': found.after_task_id,
        'total_tasks': summary.total_tasks,
        'last_task_end': format_date(summary.last_task_end) if summary.last_task_end else None,
    })


@planner_bp.route('/tasks', methods=['POST'])
@login_required
def add_task():
    data = _payload()
    wanted = TaskRequest(
        name=data.get('name', ''),
        resource=data.get('resource', ''),
        duration=data.get('duration', 1),
        type=data.get('type') or current_app.config['DEFAULT_TASK_TYPE'],
        insert_after_id=data.get('insert_after_id') or None,
    )
    result = scheduling.insert_task(load_store(), wanted, today=_today())
    if not result.ok:
        logger.info('Task not added: %s', result.message)
        return _fail(result.error)
    insertion = result.value
    save_store(insertion.store)
    logger.info('Added task %s for %s', insertion.task.id, insertion.task.resource,
                extra={'data': {'shifted': list(insertion.shifted_ids)}})
    if _wants_json():
        return jsonify({'success': True, 'task': insertion.task.to_dict(),
                        'shifted_ids': list(insertion.shifted_ids)}), 201
    flash(f"Task '{insertion.task.name}' scheduled on {format_date(insertion.task.start_date)}.")
    return redirect(url_for('planner.index'))


@planner_bp.route('/allocation', methods=['POST'])
@login_required
def allocation():
    percentage = _payload().get('percentage')
    result = scheduling.recalculate_allocation(load_store(), percentage)
    if not result.ok:
        return _fail(result.error)
    save_store(result.value)
    percentage = scheduling.whole_number(percentage)
    save_allocation(percentage)
    logger.info('Allocation set to %s%%', percentage)
    return _done(f'Allocation set to {percentage}%.', percentage=percentage, tasks=result.value.to_list())


@planner_bp.route('/import', methods=['POST'])
@login_required
def import_tasks():
    upload = request.files.get('file')
    mode = request.form.get('mode', 'replace')
    if not upload or not upload.filename:
        return _done_error('No file uploaded.')
    try:
        text = upload.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        return _done_error('The file is not valid UTF-8 text.')
    result = csv_io.import_csv(text, load_store(), mode=mode, today=_today())
    if not result.ok:
        logger.warning('CSV import rejected: %s', result.message, extra={'data': {'file': upload.filename}})
        return _fail(result.error)
    outcome = result.value
    save_store(outcome.store)
    logger.info('Imported %d tasks from %s (%s, %s)', outcome.imported, upload.filename,
                outcome.format.value, mode)
    return _done(f'{outcome.imported} tasks loaded.', imported=outcome.imported, format=outcome.format.value)


def _done_error(message):
    if _wants_json():
        return jsonify({'success': False, 'error': message}), 400
    flash(message)
    return redirect(url_for('planner.index'))


@planner_bp.route('/export.csv')
@login_required
def export_tasks():
    output = make_response(csv_io.export_csv(load_store()))
    output.headers['Content-Disposition'] = f'attachment; filename={csv_io.export_filename(_today())}'
    output.headers['Content-type'] = 'text/csv'
    return output


def make_odoo_client():
    cfg = current_app.config
    config = load_odoo_config(defaults={
        'url': cfg.get('ODOO_URL'),
        'database': cfg.get('ODOO_DB'),
        'username': cfg.get('ODOO_USERNAME'),
        'api_key': cfg.get('ODOO_API_KEY'),
    })
    return OdooClient(config, timeout=cfg.get('ODOO_TIMEOUT', 30), retries=cfg.get('ODOO_RETRIES', 2))


@planner_bp.route('/sync', methods=['POST'])
@login_required
def sync_tasks():
    mode = _payload().get('mode', 'replace')
    try:
        client = make_odoo_client()
        source = client.get_formatted_tasks(tag_filter=current_app.config.get('ODOO_TAG_FILTER'),
                                            today=_today())
    except OdooConfigError as e:
        logger.warning('Sync skipped, incomplete Odoo configuration', extra={'data': e.errors})
        return _done_error(f'Odoo is not configured: {e}')
    except OdooError as e:
        logger.error('Sync failed: %s', e)
        if _wants_json():
            return jsonify({'success': False, 'error': str(e)}), 502
        flash(f'Could not load tasks from Odoo: {e}')
        return redirect(url_for('planner.index'))
    result = sync(load_store(), source, mode=mode)
    if not result.ok:
        logger.error('Sync rejected: %s', result.message)
        return _fail(result.error)
    outcome = result.value
    save_store(outcome.store)
    record_sync()
    logger.info('Synced %d tasks from Odoo (%d skipped, %s)', outcome.added, outcome.skipped, mode)
    return _done(f'{outcome.added} tasks synced from Odoo.', added=outcome.added, skipped=outcome.skipped)


@planner_bp.route('/gantt.png')
@login_required
def gantt_chart():
    filters = _filters()
    view = build_view(load_store(), **filters)
    tasks = view['tasks']
    rng = view['range']
    fig, ax = plt.subplots(figsize=(16, max(3, 0.5 * len(tasks) + 1.5)))
    try:
        if not tasks:
            ax.text(0.5, 0.5, 'No tasks to display', ha='center', va='center', fontsize=16,
                    color='gray', transform=ax.transAxes)
        else:
            for d in view['dates']:
                if d.weekday() >= 5:
                    day = mdates.date2num(d)
                    ax.axvspan(day, day + 1, color=WEEKEND_COLOR, zorder=0)
            for i, t in enumerate(tasks):
                ax.barh(i, t.duration, left=mdates.date2num(t.start_date), height=0.5, align='center',
                        color=TYPE_COLORS.get(t.type, DEFAULT_COLOR), edgecolor='black', zorder=2)
                ax.text(mdates.date2num(t.start_date) + t.duration / 2, i, f'{t.duration}g',
                        ha='center', va='center', color='white', fontsize=9, zorder=3)
            ax.set_yticks(range(len(tasks)))
            ax.set_yticklabels([f'{t.name} ({t.resource})' for t in tasks])
            ax.invert_yaxis()
            legend_items = [mpatches.Patch(color=DEFAULT_COLOR, label='Consulenza'),
                            mpatches.Patch(color=TYPE_COLORS['Sviluppo'], label='Sviluppo'),
                            mpatches.Patch(facecolor=WEEKEND_COLOR, edgecolor='gray', label='Weekend')]
            ax.legend(handles=legend_items, loc='upper left', bbox_to_anchor=(1.01, 1), frameon=True)
        ax.set_xlim(mdates.date2num(rng.min_date), mdates.date2num(rng.max_date + timedelta(days=1)))
        ax.xaxis.set_major_locator(mdates.AutoDateLocator())
        ax.xaxis.set_major_formatter(mdates.DateFormatter('%Y-%m-%d'))
        ax.set_xlabel('Date')
        fig.autofmt_xdate()
        fig.tight_layout()
        buf = io.BytesIO()
        fig.savefig(buf, format='png')
    except Exception:
        logger.exception('Error rendering Gantt chart')
        return Response('Error rendering Gantt chart', status=500, mimetype='text/plain')
    finally:
        plt.close(fig)
    return Response(buf.getvalue(), mimetype='image/png')
