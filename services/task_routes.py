"""Task route handlers registered from app.py."""
from flask import jsonify, request

from backend.errors import RecurrenceError
from services.task_service import create_task, delete_task, get_task, list_tasks, update_task
from services.user_routes import get_current_user
from services.validation_service import parse_bool, parse_int


def tasks_collection():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'GET':
        tasks = list_tasks(
            user.id,
            parent_id=parse_int(request.args.get('parent_id')),
            templates_only=parse_bool(request.args.get('templates_only')),
        )
        return jsonify([t.to_dict() for t in tasks])

    data = request.get_json(silent=True) or {}
    try:
        task = create_task(user.id, data)
    except (ValueError, RecurrenceError) as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(task.to_dict()), 201


def task_detail(task_id):
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'GET':
        task = get_task(user.id, task_id)
        if task is None:
            return jsonify({'error': 'Task not found'}), 404
        return jsonify(task.to_dict())

    if request.method == 'DELETE':
        removed = delete_task(user.id, task_id)
        if not removed:
            return jsonify({'error': 'Task not found'}), 404
        return jsonify({'deleted': removed})

    data = request.get_json(silent=True) or {}
    try:
        task = update_task(user.id, task_id, data)
    except (ValueError, RecurrenceError) as e:
        return jsonify({'error': str(e)}), 400
    if task is None:
        return jsonify({'error': 'Task not found'}), 404
    return jsonify(task.to_dict())
