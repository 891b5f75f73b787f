from flask import Blueprint, current_app, jsonify, request

cache_bp = Blueprint('cache', __name__, url_prefix='/api/cache')


@cache_bp.route('/stats', methods=['GET'])
def cache_stats():
    """Today's feedback cache hit rate and the AI spend it saved"""
    store = current_app.extensions['feedback_cache']

    cleaned = 0
    if request.args.get('cleanup') == 'true':
        cleaned = store.cleanup_expired()
        current_app.logger.info(f'Cleaned {cleaned} expired cache entries')

    stats = store.get_stats()
    hits, misses = stats['hits'], stats['misses']
    total = hits + misses
    estimated_savings = hits * current_app.config['AI_CALL_COST']

    return jsonify({
        'success': True,
        'hits': hits,
        'misses': misses,
        'total': total,
        'hitRate': round(hits / total * 100, 1) if total else 0.0,
        'estimatedSavings': round(estimated_savings, 2),
        'monthlyProjection': round(estimated_savings * 30, 2),
        'cleanedEntries': cleaned,
        'date': stats['date'],
        'totalEntries': stats['totalEntries'],
    })


@cache_bp.route('/questions/stats', methods=['GET'])
def question_cache_stats():
    stats = current_app.extensions['question_cache'].get_stats()
    return jsonify({'success': True, **stats})
