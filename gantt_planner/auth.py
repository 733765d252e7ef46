"""Shared-password gate in front of the planner. Cosmetic only: one password, no accounts."""
import logging

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for
from flask_login import UserMixin, current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)

GATE_USER_ID = 'planner'


class GateUser(UserMixin):
    id = GATE_USER_ID


def load_user(user_id):
    return GateUser() if user_id == GATE_USER_ID else None


@auth_bp.route('/login', methods=['GET', 'POST'])
def login():
    if current_user.is_authenticated:
        return redirect(url_for('planner.index'))
    if request.method == 'POST':
        password = request.form.get('password', '')
        if password and check_password_hash(current_app.config['PLANNER_PASSWORD_HASH'], password):
            login_user(GateUser())
            logger.info('Gate opened')
            target = request.args.get('next') or ''
            if not target.startswith('/') or target.startswith('//'):
                target = url_for('planner.index')
            return redirect(target)
        logger.warning('Wrong gate password from %s', request.remote_addr or 'unknown')
        flash('Incorrect password.')
    return render_template('login.html')


@auth_bp.route('/logout')
@login_required
def logout():
    logout_user()
    flash('Logged out.')
    return redirect(url_for('auth.login'))
