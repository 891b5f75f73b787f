from hugos.extensions import db
from hugos.utils.clock import utcnow


class FeedbackCacheEntry(db.Model):
    """Previously generated feedback keyed by the transcript hash"""
    __tablename__ = 'feedback_cache'

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.JSON, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    hits = db.Column(db.Integer, nullable=False, default=0)
    last_accessed = db.Column(db.DateTime, default=utcnow)
    ttl_seconds = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<FeedbackCacheEntry {self.key} hits={self.hits}>'


class CacheStats(db.Model):
    """Day-scoped hit/miss counters for the feedback cache"""
    __tablename__ = 'cache_stats'

    date = db.Column(db.String(10), primary_key=True)  # YYYY-MM-DD (UTC)
    hits = db.Column(db.Integer, nullable=False, default=0)
    misses = db.Column(db.Integer, nullable=False, default=0)
    last_updated = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f'<CacheStats {self.date} hits={self.hits} misses={self.misses}>'


class QuestionSet(db.Model):
    """A generated question set reusable for the same role/level/type/count"""
    __tablename__ = 'question_sets'

    id = db.Column(db.String(40), primary_key=True)
    role = db.Column(db.String(120), nullable=False)
    level = db.Column(db.String(60), nullable=False)
    interview_type = db.Column(db.String(60), nullable=False)
    question_count = db.Column(db.Integer, nullable=False)
    questions = db.Column(db.JSON, nullable=False)
    owner_id = db.Column(db.String(128))
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    # Usage metadata; best-effort counters
    usage_count = db.Column(db.Integer, nullable=False, default=0)
    total_sessions = db.Column(db.Integer, nullable=False, default=0)
    average_rating = db.Column(db.Float, nullable=False, default=0.0)
    last_used = db.Column(db.DateTime, default=utcnow)

    usage_log = db.relationship('QuestionUsage', backref='question_set', lazy='dynamic',
                                cascade='all, delete-orphan')

    __table_args__ = (
        db.Index('ix_question_sets_lookup', 'role', 'level', 'interview_type', 'question_count'),
    )

    def __repr__(self):
        return f'<QuestionSet {self.id} {self.role}/{self.level}/{self.interview_type}>'


class QuestionUsage(db.Model):
    __tablename__ = 'question_usage'

    id = db.Column(db.Integer, primary_key=True)
    question_set_id = db.Column(db.String(40), db.ForeignKey('question_sets.id'), nullable=False)
    user_id = db.Column(db.String(128), nullable=False)
    session_id = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
