from hugos.extensions import db
from hugos.utils.clock import utcnow


class Feedback(db.Model):
    __tablename__ = 'feedback'

    id = db.Column(db.String(40), primary_key=True)
    interview_id = db.Column(db.String(128), nullable=False, index=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    total_score = db.Column(db.Float, nullable=False, default=0)
    category_scores = db.Column(db.JSON, nullable=False, default=list)
    strengths = db.Column(db.JSON, nullable=False, default=list)
    areas_for_improvement = db.Column(db.JSON, nullable=False, default=list)
    final_assessment = db.Column(db.Text)
    source = db.Column(db.String(20), nullable=False)  # gemini, heuristic, cache
    cache_key = db.Column(db.String(64), index=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'interviewId': self.interview_id,
            'userId': self.user_id,
            'totalScore': self.total_score,
            'categoryScores': self.category_scores,
            'strengths': self.strengths,
            'areasForImprovement': self.areas_for_improvement,
            'finalAssessment': self.final_assessment,
            'source': self.source,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Feedback {self.id} interview={self.interview_id} score={self.total_score}>'
