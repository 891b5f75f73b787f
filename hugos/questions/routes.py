from flask import Blueprint, current_app, jsonify

from hugos.errors import GenerationError
from hugos.extensions import db
from hugos.utils.validation import json_body, optional_field, require_fields

questions_bp = Blueprint('questions', __name__, url_prefix='/api/questions')


@questions_bp.route('/generate', methods=['POST'])
def generate_questions():
    data = json_body()
    role, level, interview_type = require_fields(data, 'role', 'level', 'type', kind=str)
    amount = require_fields(data, 'amount')[0]
    user_id = optional_field(data, 'userId')
    session_id = optional_field(data, 'sessionId')

    try:
        result = current_app.extensions['question_service'].get_questions(
            role, level, interview_type, amount,
            user_id=user_id,
            force_refresh=bool(data.get('forceRefresh')),
            session_id=session_id,
        )
    except GenerationError as e:
        db.session.rollback()
        current_app.logger.error(f'Question generation failed for {role}: {str(e)}')
        return jsonify({
            'success': False,
            'message': 'Failed to generate questions'
        }), 502

    return jsonify({
        'success': True,
        'questions': result.questions,
        'cached': result.cached,
        'cacheId': result.cache_id,
        'usageCount': result.usage_count,
    })
