import os


class Config:
    # Use environment variables; fallbacks only for dev
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-insecure-change-me')
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///gantt_planner.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    PLANNER_PASSWORD = os.environ.get('PLANNER_PASSWORD', 'admin')
    PLANNER_TIMEZONE = os.environ.get('PLANNER_TIMEZONE', 'Europe/Rome')

    ALLOCATION_CHOICES = (100, 80, 70, 60, 50)
    TASK_TYPES = ('Consulenza', 'Sviluppo')
    DEFAULT_TASK_TYPE = 'Consulenza'

    ODOO_URL = os.environ.get('ODOO_URL', '')
    ODOO_DB = os.environ.get('ODOO_DB', '')
    ODOO_USERNAME = os.environ.get('ODOO_USERNAME', '')
    ODOO_API_KEY = os.environ.get('ODOO_API_KEY') or os.environ.get('ODOO_PASSWORD', '')
    ODOO_TAG_FILTER = os.environ.get('ODOO_TAG_FILTER', 'Pianificato')
    ODOO_TIMEOUT = int(os.environ.get('ODOO_TIMEOUT', '30'))
    ODOO_RETRIES = int(os.environ.get('ODOO_RETRIES', '2'))

    LOG_BUFFER_SIZE = 1000


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    LOGIN_DISABLED = True
    PLANNER_PASSWORD = 'test-password'
    ODOO_URL = ''
    ODOO_DB = ''
    ODOO_USERNAME = ''
    ODOO_API_KEY = ''
