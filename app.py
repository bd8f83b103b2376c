import os

from dotenv import load_dotenv
from flask import Flask

load_dotenv()

from background_jobs import RecurrenceScheduler
from models import db
from services import event_routes, recurrence_routes, task_routes, user_routes


def _default_config():
    return {
        'SQLALCHEMY_DATABASE_URI': os.environ.get('DATABASE_URL', 'sqlite:///todo.db'),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SECRET_KEY': os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production'),
        'PERMANENT_SESSION_LIFETIME': 365 * 24 * 60 * 60,  # 1 year in seconds
        'API_SHARED_KEY': os.environ.get('API_SHARED_KEY'),  # Optional shared key for API callers
        'ENABLE_RECURRENCE_JOBS': os.environ.get('ENABLE_RECURRENCE_JOBS', '1') == '1',
        'RECURRENCE_INTERVAL_MINUTES': int(os.environ.get('RECURRENCE_INTERVAL_MINUTES', 60)),
        'RECURRENCE_LOOKAHEAD_DAYS': int(os.environ.get('RECURRENCE_LOOKAHEAD_DAYS', 30)),
        'RECURRENCE_LOCK_STALE_MINUTES': int(os.environ.get('RECURRENCE_LOCK_STALE_MINUTES', 5)),
    }


def _register_routes(app):
    # Users
    app.add_url_rule('/api/create-user', view_func=user_routes.create_user, methods=['POST'])
    app.add_url_rule('/api/set-user/<int:user_id>', view_func=user_routes.set_user, methods=['POST'])
    app.add_url_rule('/api/current-user', view_func=user_routes.current_user_info)

    # Tasks
    app.add_url_rule('/api/tasks', view_func=task_routes.tasks_collection, methods=['GET', 'POST'])
    app.add_url_rule('/api/tasks/<int:task_id>', view_func=task_routes.task_detail, methods=['GET', 'PUT', 'DELETE'])

    # Calendar events
    app.add_url_rule('/api/events', view_func=event_routes.events_collection, methods=['GET', 'POST'])
    app.add_url_rule('/api/events/<int:event_id>', view_func=event_routes.event_detail, methods=['GET', 'PUT', 'DELETE'])

    # Recurrence engine
    app.add_url_rule(
        '/api/recurring/<kind>/<int:template_id>/materialize',
        view_func=recurrence_routes.materialize_now,
        methods=['POST'],
    )
    app.add_url_rule('/api/recurring/process-now', view_func=recurrence_routes.process_now, methods=['POST'])
    app.add_url_rule('/api/recurring/next-occurrence', view_func=recurrence_routes.next_occurrences)


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.update(_default_config())
    if config_overrides:
        app.config.update(config_overrides)

    db.init_app(app)
    _register_routes(app)

    with app.app_context():
        db.create_all()

    app.extensions['recurrence_scheduler'] = RecurrenceScheduler(app)

    @app.before_request
    def _bootstrap_background_jobs():
        _start_scheduler(app)

    return app


def _start_scheduler(app):
    """Start the recurrence sweep once per process."""
    if not app.config.get('ENABLE_RECURRENCE_JOBS'):
        return
    scheduler = app.extensions['recurrence_scheduler']
    if scheduler.running:
        return
    # Avoid double-start in Flask debug reloader
    if app.debug and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
        return
    scheduler.start(run_now=True, run_in_background=True)


if __name__ == '__main__':
    app = create_app()
    app.run(debug=os.environ.get('FLASK_DEBUG') == '1')
