import logging
from datetime import datetime, UTC

from flask import Blueprint, current_app, flash, jsonify, make_response, redirect, render_template, request, url_for
from flask_login import login_required

from .db import load_odoo_config, save_odoo_config
from .logbuffer import get_buffer
from .odoo import OdooClient, OdooConfig, OdooConfigError

logger = logging.getLogger(__name__)

settings_bp = Blueprint('settings', __name__)


def _env_defaults():
    cfg = current_app.config
    return {
        'url': cfg.get('ODOO_URL'),
        'database': cfg.get('ODOO_DB'),
        'username': cfg.get('ODOO_USERNAME'),
        'api_key': cfg.get('ODOO_API_KEY'),
    }


def _wants_json():
    return request.is_json or request.accept_mimetypes.best == 'application/json'


@settings_bp.route('/settings/odoo', methods=['GET', 'POST'])
@login_required
def odoo_settings():
    if request.method == 'GET':
        config = load_odoo_config(defaults=_env_defaults())
        if _wants_json():
            return jsonify({'config': config.to_dict(), 'complete': config.is_complete()})
        return render_template('settings.html', config=config.to_dict(), errors={})

    data = request.get_json(silent=True) if request.is_json else request.form
    data = data or {}
    current = load_odoo_config(defaults=_env_defaults())
    submitted = OdooConfig.from_mapping(data)
    # a masked or empty key means "keep the stored one"
    if not submitted.api_key or set(submitted.api_key) == {'*'}:
        submitted = OdooConfig(submitted.url, submitted.database, submitted.username, current.api_key)
    errors = submitted.validate()
    if errors:
        logger.warning('Odoo settings rejected', extra={'data': errors})
        if _wants_json():
            return jsonify({'success': False, 'errors': errors}), 400
        return render_template('settings.html', config=submitted.to_dict(), errors=errors), 400
    config = submitted.cleaned()
    save_odoo_config(config)
    logger.info('Odoo settings saved for %s', config.url)
    if _wants_json():
        return jsonify({'success': True, 'config': config.to_dict()})
    flash('Odoo settings saved.')
    return redirect(url_for('settings.odoo_settings'))


def make_diagnostic_client():
    cfg = current_app.config
    return OdooClient(load_odoo_config(defaults=_env_defaults()),
                      timeout=cfg.get('ODOO_TIMEOUT', 30), retries=0)


@settings_bp.route('/settings/odoo/test')
@login_required
def odoo_test():
    try:
        client = make_diagnostic_client()
    except OdooConfigError as e:
        return jsonify({'success': False, 'errors': e.errors, 'steps': []}), 400
    steps = client.diagnose()
    success = bool(steps) and all(s.ok for s in steps)
    logger.info('Connection test %s', 'passed' if success else 'failed',
                extra={'data': {s.name: s.ok for s in steps}})
    return jsonify({'success': success, 'steps': [s._asdict() for s in steps]})


@settings_bp.route('/logs')
@login_required
def logs():
    buffer = get_buffer(current_app)
    level = request.args.get('level', 'ALL')
    category = request.args.get('category') or None
    return jsonify({
        'summary': buffer.summary(),
        'entries': buffer.entries(level=level, category=category),
    })


@settings_bp.route('/logs/export')
@login_required
def export_logs():
    stamp = datetime.now(UTC).strftime('%Y-%m-%dT%H-%M-%S')
    output = make_response(get_buffer(current_app).export_json())
    output.headers['Content-Disposition'] = f'attachment; filename=odoo-sync-logs-{stamp}.json'
    output.headers['Content-type'] = 'application/json'
    return output


@settings_bp.route('/logs/clear', methods=['POST'])
@login_required
def clear_logs():
    get_buffer(current_app).clear()
    return jsonify({'success': True})
