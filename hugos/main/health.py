"""
Health check endpoints for monitoring server status
"""
from flask import Blueprint, jsonify, current_app
from hugos.extensions import db
from sqlalchemy import text
import time

health_bp = Blueprint('health', __name__, url_prefix='/health')


@health_bp.route('/')
def health_check():
    """Basic health check endpoint"""
    try:
        # Test database connection
        db.session.execute(text('SELECT 1'))

        cache_stats = current_app.extensions['feedback_cache'].get_stats()

        return jsonify({
            'status': 'healthy',
            'timestamp': time.time(),
            'database': 'connected',
            'cache': {
                'entries': cache_stats['totalEntries'],
                'hits_today': cache_stats['hits'],
                'misses_today': cache_stats['misses'],
            },
            'ai': 'gemini' if current_app.config.get('GEMINI_API_KEY') else 'fallback',
            'version': current_app.config.get('APP_VERSION', '1.0.0')
        }), 200
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Health check failed: {str(e)}')
        return jsonify({
            'status': 'unhealthy',
            'timestamp': time.time(),
            'error': str(e)
        }), 500


@health_bp.route('/ready')
def readiness_check():
    """Readiness check for load balancers"""
    try:
        db.session.execute(text('SELECT 1'))

        return jsonify({
            'status': 'ready',
            'timestamp': time.time()
        }), 200
    except Exception as e:
        db.session.rollback()
        return jsonify({
            'status': 'not_ready',
            'timestamp': time.time(),
            'error': str(e)
        }), 503
