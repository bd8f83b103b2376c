"""Recurrence engine endpoints: manual materialize, sweep-now and occurrence preview."""
from flask import jsonify, request

from backend.errors import TemplateNotFound
from backend.materializer import ADAPTERS, materialize_future_instances
from backend.recurrence import RecurrenceConfig, compute_next_occurrence
from backend.recurrence_runner import process_all_recurring
from services.recurring_service import configured_lookahead_days
from services.user_routes import get_current_user
from services.validation_service import parse_datetime_value, parse_int

MAX_PREVIEW = 50


def materialize_now(kind, template_id):
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    adapter = ADAPTERS.get(kind)
    if adapter is None:
        return jsonify({'error': 'Unknown kind'}), 404

    template = adapter.load_template(template_id)
    if template is None or template.user_id != user.id:
        return jsonify({'error': 'Template not found'}), 404

    data = request.get_json(silent=True) or {}
    lookahead = parse_int(data.get('lookahead_days'), configured_lookahead_days())
    try:
        result = materialize_future_instances(kind, template_id, max(lookahead, 0))
    except TemplateNotFound as e:
        return jsonify({'error': str(e)}), 404
    return jsonify({
        'template_id': result.template_id,
        'created': result.created,
        'skipped': result.skipped,
        'reason': result.reason,
    })


def process_now():
    """Run a sweep over the current user's templates only."""
    user = get_current_user()
    if not user:
        return jsonify({'error': 'No user selected'}), 401
    report = process_all_recurring(user_id=user.id)
    return jsonify(report.to_dict())


def next_occurrences():
    """Preview upcoming occurrences for an anchor and pattern without touching the database."""
    anchor = parse_datetime_value(request.args.get('anchor'))
    if anchor is None:
        return jsonify({'error': 'Invalid anchor'}), 400
    days = [d for d in (request.args.get('days') or '').split(',') if d.strip()]
    config = RecurrenceConfig(
        pattern=request.args.get('pattern'),
        days=days,
        end_date=parse_datetime_value(request.args.get('end_date')),
    )
    limit = min(max(parse_int(request.args.get('limit'), 1), 1), MAX_PREVIEW)

    occurrences = []
    cursor = anchor
    while len(occurrences) < limit:
        cursor = compute_next_occurrence(cursor, config)
        if cursor is None:
            break
        occurrences.append(cursor.isoformat())
    return jsonify({'anchor': anchor.isoformat(), 'occurrences': occurrences})
