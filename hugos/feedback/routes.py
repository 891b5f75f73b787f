from flask import Blueprint, current_app, jsonify, request

from hugos.errors import GenerationError, ValidationError
from hugos.extensions import db
from hugos.utils.validation import json_body, require_fields

feedback_bp = Blueprint('feedback', __name__, url_prefix='/api/feedback')


def _service():
    return current_app.extensions['feedback_service']


@feedback_bp.route('', methods=['POST'])
def create_feedback():
    """Generate (or reuse) feedback for a finished interview"""
    data = json_body()
    interview_id, user_id, transcript = require_fields(data, 'interviewId', 'userId', 'transcript')
    require_fields(data, 'interviewId', 'userId', kind=str)

    try:
        outcome = _service().submit(interview_id, user_id, transcript)
    except GenerationError as e:
        db.session.rollback()
        current_app.logger.error(f'Feedback generation failed for interview {interview_id}: {str(e)}')
        return jsonify({
            'success': False,
            'message': 'Failed to generate feedback'
        }), 502

    return jsonify({
        'success': True,
        'feedbackId': outcome.feedback_id,
        'cached': outcome.cached,
    }), 201


@feedback_bp.route('', methods=['GET'])
def latest_feedback():
    interview_id = request.args.get('interviewId')
    user_id = request.args.get('userId')
    if not interview_id or not user_id:
        raise ValidationError('interviewId and userId are required', fields=['interviewId', 'userId'])

    feedback = _service().latest_for(interview_id, user_id)
    if feedback is None:
        return jsonify({'success': False, 'message': 'Feedback not found'}), 404
    return jsonify({'success': True, 'feedback': feedback.to_dict()})


@feedback_bp.route('/<feedback_id>', methods=['GET'])
def get_feedback(feedback_id):
    feedback = _service().get_feedback(feedback_id)
    if feedback is None:
        return jsonify({'success': False, 'message': 'Feedback not found'}), 404
    return jsonify({'success': True, 'feedback': feedback.to_dict()})
