"""Calendar event route handlers registered from app.py."""
from flask import jsonify, request

from backend.errors import RecurrenceError
from services.event_service import create_event, delete_event, get_event, list_events, update_event
from services.user_routes import get_current_user
from services.validation_service import parse_datetime_value, parse_int


def events_collection():
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'GET':
        start_raw = request.args.get('start')
        end_raw = request.args.get('end')
        start = parse_datetime_value(start_raw)
        end = parse_datetime_value(end_raw)
        if start_raw and start is None:
            return jsonify({'error': 'Invalid start date'}), 400
        if end_raw and end is None:
            return jsonify({'error': 'Invalid end date'}), 400
        events = list_events(user.id, start=start, end=end, parent_id=parse_int(request.args.get('parent_id')))
        return jsonify([ev.to_dict() for ev in events])

    data = request.get_json(silent=True) or {}
    try:
        event = create_event(user.id, data)
    except (ValueError, RecurrenceError) as e:
        return jsonify({'error': str(e)}), 400
    return jsonify(event.to_dict()), 201


def event_detail(event_id):
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401

    if request.method == 'GET':
        event = get_event(user.id, event_id)
        if event is None:
            return jsonify({'error': 'Event not found'}), 404
        return jsonify(event.to_dict())

    if request.method == 'DELETE':
        try:
            removed = delete_event(user.id, event_id, delete_mode=request.args.get('mode') or 'this')
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        if not removed:
            return jsonify({'error': 'Event not found'}), 404
        return jsonify({'deleted': removed})

    data = request.get_json(silent=True) or {}
    update_mode = data.pop('update_mode', None) or request.args.get('mode') or 'this'
    try:
        event = update_event(user.id, event_id, data, update_mode=update_mode)
    except (ValueError, RecurrenceError) as e:
        return jsonify({'error': str(e)}), 400
    if event is None:
        return jsonify({'error': 'Event not found'}), 404
    return jsonify(event.to_dict())
