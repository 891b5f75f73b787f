import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from hugos.cache.feedback_cache import FeedbackCacheStore
from hugos.errors import ValidationError
from hugos.feedback.models import Feedback
from hugos.utils.clock import utcnow
from hugos.utils.hashing import hash_conversation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedbackOutcome:
    feedback_id: str
    cached: bool
    cache_key: str


def validate_transcript(transcript):
    if not isinstance(transcript, list) or not transcript:
        raise ValidationError('transcript must be a non-empty list of turns', fields=['transcript'])
    for turn in transcript:
        if not isinstance(turn, dict) or not isinstance(turn.get('role'), str) \
                or not isinstance(turn.get('content'), str):
            raise ValidationError('each transcript turn needs a role and content', fields=['transcript'])


class FeedbackService:
    """Turns interview transcripts into stored feedback, reusing cached artifacts"""

    def __init__(self, session, cache: FeedbackCacheStore, generator, ttl=604800, clock=utcnow):
        self._session = session
        self.cache = cache
        self.generator = generator
        self.ttl = ttl
        self._clock = clock

    def submit(self, interview_id, user_id, transcript) -> FeedbackOutcome:
        validate_transcript(transcript)
        key = hash_conversation(transcript)

        lookup = self.cache.get(key)
        if lookup.is_hit:
            artifact, source, cached = lookup.value, 'cache', True
        else:
            # Generator errors propagate before anything is written
            artifact = self.generator.generate(transcript)
            source = getattr(self.generator, 'source', 'gemini')
            self.cache.put(key, artifact, self.ttl)
            cached = False

        feedback = Feedback(
            id=f"fb_{uuid.uuid4().hex}",
            interview_id=interview_id,
            user_id=user_id,
            total_score=artifact.get('totalScore', 0),
            category_scores=artifact.get('categoryScores', []),
            strengths=artifact.get('strengths', []),
            areas_for_improvement=artifact.get('areasForImprovement', []),
            final_assessment=artifact.get('finalAssessment', ''),
            source=source,
            cache_key=key,
            created_at=self._clock(),
        )
        self._session.add(feedback)
        self._session.commit()
        logger.info("Feedback %s stored for interview %s (cached=%s)", feedback.id, interview_id, cached)
        return FeedbackOutcome(feedback_id=feedback.id, cached=cached, cache_key=key)

    def get_feedback(self, feedback_id) -> Optional[Feedback]:
        return self._session.get(Feedback, feedback_id)

    def latest_for(self, interview_id, user_id) -> Optional[Feedback]:
        return self._session.query(Feedback).filter_by(
            interview_id=interview_id, user_id=user_id
        ).order_by(Feedback.created_at.desc()).first()
