"""
Question set cache.

Several sets may share the same (role, level, type, count) key; ``find``
returns the most recently created one. Sets never expire.
"""
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func

from hugos.cache.models import QuestionSet, QuestionUsage
from hugos.utils.clock import utcnow

logger = logging.getLogger(__name__)


def normalize_key_part(value: Optional[str]) -> str:
    return ' '.join((value or '').strip().lower().split())


class QuestionCacheStore:

    def __init__(self, session, clock: Callable = utcnow):
        self._session = session
        self._clock = clock

    def find(self, role: str, level: str, interview_type: str, count: int) -> Optional[QuestionSet]:
        """Exact match on the normalized composite key, newest first"""
        return self._session.query(QuestionSet).filter_by(
            role=normalize_key_part(role),
            level=normalize_key_part(level),
            interview_type=normalize_key_part(interview_type),
            question_count=int(count),
        ).order_by(QuestionSet.created_at.desc(), QuestionSet.id.desc()).first()

    def store(self, role: str, level: str, interview_type: str, count: int,
              questions: List[Dict[str, Any]], owner_id: Optional[str]) -> str:
        now = self._clock()
        question_set = QuestionSet(
            id=f"qs_{uuid.uuid4().hex}",
            role=normalize_key_part(role),
            level=normalize_key_part(level),
            interview_type=normalize_key_part(interview_type),
            question_count=int(count),
            questions=list(questions),
            owner_id=owner_id,
            created_at=now,
            last_used=now,
        )
        self._session.add(question_set)
        self._session.commit()
        logger.info("Cached question set %s (%s/%s/%s, %d questions)",
                    question_set.id, question_set.role, question_set.level,
                    question_set.interview_type, len(questions))
        return question_set.id

    def record_usage(self, question_set_id: str, user_id: str, session_id: Optional[str] = None) -> bool:
        """Best-effort usage counter; concurrent increments may be lost under races"""
        now = self._clock()
        updated = self._session.query(QuestionSet).filter_by(id=question_set_id).update({
            QuestionSet.usage_count: QuestionSet.usage_count + 1,
            QuestionSet.total_sessions: QuestionSet.total_sessions + 1,
            QuestionSet.last_used: now,
        }, synchronize_session=False)
        if not updated:
            self._session.rollback()
            return False

        if session_id:
            self._session.add(QuestionUsage(
                question_set_id=question_set_id,
                user_id=user_id or 'anonymous',
                session_id=session_id,
                created_at=now,
            ))
        self._session.commit()
        return True

    def get_stats(self) -> Dict[str, Any]:
        total_cached = self._session.query(QuestionSet).count()
        most_used = self._session.query(QuestionSet).order_by(
            QuestionSet.usage_count.desc(), QuestionSet.created_at.desc()
        ).limit(5).all()
        total_uses = self._session.query(func.coalesce(func.sum(QuestionSet.usage_count), 0)).scalar()
        return {
            'totalCached': total_cached,
            'totalUses': total_uses,
            'mostUsed': [
                {'id': qs.id, 'role': qs.role, 'uses': qs.usage_count}
                for qs in most_used
            ],
        }
