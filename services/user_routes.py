"""User/session routes. Authentication itself lives outside this app."""
from flask import current_app, jsonify, request, session

from models import db, User


def get_current_user():
    """Resolve the current user from a shared API key + user id header, else fall back to session."""
    # Header-based identity for service callers (scheduler hooks, command layer)
    api_key = request.headers.get('X-API-Key')
    api_user_id = request.headers.get('X-User-Id')
    shared_key = current_app.config.get('API_SHARED_KEY')
    if shared_key and api_key and api_user_id:
        try:
            api_uid_int = int(api_user_id)
        except (TypeError, ValueError):
            api_uid_int = None
        if api_uid_int and api_key == shared_key:
            user = db.session.get(User, api_uid_int)
            if user:
                return user

    user_id = session.get('user_id')
    if user_id:
        return db.session.get(User, user_id)
    return None


def create_user():
    """Create a new user and select it for this session."""
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    if not username:
        return jsonify({'error': 'Username is required'}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=username)
    db.session.add(user)
    db.session.commit()

    session['user_id'] = user.id
    session.permanent = True
    return jsonify({'success': True, 'user_id': user.id, 'username': user.username}), 201


def set_user(user_id):
    user = db.get_or_404(User, user_id)
    session['user_id'] = user.id
    session.permanent = True
    return jsonify({'success': True, 'username': user.username, 'user_id': user.id})


def current_user_info():
    user = get_current_user()
    if user:
        return jsonify({'user_id': user.id, 'username': user.username})
    return jsonify({'user_id': None, 'username': None})
