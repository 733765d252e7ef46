from flask import Flask
from flask_login import LoginManager
from werkzeug.security import generate_password_hash

from .config import Config, TestingConfig
from .db import db

login_manager = LoginManager()
login_manager.login_view = 'auth.login'


def create_app(testing=False, config=None):
    app = Flask(__name__)
    app.config.from_object(TestingConfig if testing else Config)
    if config:
        app.config.update(config)
    app.config['PLANNER_PASSWORD_HASH'] = generate_password_hash(app.config['PLANNER_PASSWORD'])

    db.init_app(app)
    login_manager.init_app(app)

    from . import logbuffer
    logbuffer.init_app(app)

    from .auth import auth_bp, load_user
    from .planner import planner_bp
    from .settings import settings_bp
    login_manager.user_loader(load_user)
    app.register_blueprint(auth_bp)
    app.register_blueprint(planner_bp)
    app.register_blueprint(settings_bp)

    with app.app_context():
        db.create_all()

    @app.get('/health')
    def health():
        return {'status': 'ok'}

    return app
