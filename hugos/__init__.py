from flask import Flask, jsonify
from werkzeug.utils import import_string
import os
from .extensions import db, migrate
from .errors import ValidationError
from .utils.clock import utcnow


def create_app(config_class='config.DevelopmentConfig', mpesa_service=None,
               feedback_generator=None, question_generator=None, clock=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    config_obj = import_string(config_class) if isinstance(config_class, str) else config_class
    config_obj.init_app(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(__file__), '..', 'migrations'))

    # Import models to ensure they are registered with SQLAlchemy
    from hugos.cache import models as cache_models  # noqa: F401
    from hugos.feedback import models as feedback_models  # noqa: F401
    from hugos.payment import models as payment_models  # noqa: F401

    _init_services(app, mpesa_service, feedback_generator, question_generator, clock or utcnow)

    # Register blueprints
    from hugos.main.health import health_bp
    from hugos.cache.routes import cache_bp
    from hugos.feedback.routes import feedback_bp
    from hugos.questions.routes import questions_bp
    from hugos.payment.routes import payment_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(cache_bp)
    app.register_blueprint(feedback_bp)
    app.register_blueprint(questions_bp)
    app.register_blueprint(payment_bp)

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        db.session.rollback()
        return jsonify({
            'success': False,
            'message': error.message,
            'fields': error.fields,
        }), 400

    return app


def _init_services(app, mpesa_service, feedback_generator, question_generator, clock):
    """Build the stores and services routes reach through ``app.extensions``"""
    from hugos.cache.feedback_cache import FeedbackCacheStore
    from hugos.cache.question_cache import QuestionCacheStore
    from hugos.feedback.generator import build_feedback_generator
    from hugos.feedback.service import FeedbackService
    from hugos.payment.mpesa_service import MpesaService
    from hugos.payment.store import PaymentStore
    from hugos.questions.generator import build_question_generator
    from hugos.questions.service import QuestionService

    feedback_cache = FeedbackCacheStore(db.session, clock=clock)
    question_cache = QuestionCacheStore(db.session, clock=clock)

    app.extensions['clock'] = clock
    app.extensions['feedback_cache'] = feedback_cache
    app.extensions['question_cache'] = question_cache
    app.extensions['payment_store'] = PaymentStore(
        db.session,
        clock=clock,
        expiry_minutes=app.config['PAYMENT_EXPIRY_MINUTES'],
        required_cost=app.config['INTERVIEW_COST'],
    )
    app.extensions['mpesa_service'] = mpesa_service or MpesaService.from_config(app.config)
    app.extensions['feedback_service'] = FeedbackService(
        db.session,
        cache=feedback_cache,
        generator=feedback_generator or build_feedback_generator(app.config),
        ttl=app.config['FEEDBACK_CACHE_TTL'],
        clock=clock,
    )
    app.extensions['question_service'] = QuestionService(
        cache=question_cache,
        generator=question_generator or build_question_generator(app.config),
    )
