import logging
from dataclasses import dataclass
from typing import Any, Dict, List

from hugos.cache.question_cache import QuestionCacheStore
from hugos.errors import ValidationError
from hugos.questions.generator import MAX_QUESTIONS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionSetResult:
    questions: List[Dict[str, Any]]
    cached: bool
    cache_id: str
    usage_count: int


class QuestionService:

    def __init__(self, cache: QuestionCacheStore, generator):
        self.cache = cache
        self.generator = generator

    def get_questions(self, role, level, interview_type, count, user_id=None,
                      force_refresh=False, session_id=None) -> QuestionSetResult:
        try:
            count = int(count)
        except (TypeError, ValueError) as e:
            raise ValidationError('amount must be a number', fields=['amount']) from e
        if not 1 <= count <= MAX_QUESTIONS:
            raise ValidationError(f'amount must be between 1 and {MAX_QUESTIONS}', fields=['amount'])

        if not force_refresh:
            cached = self.cache.find(role, level, interview_type, count)
            if cached is not None:
                self.cache.record_usage(cached.id, user_id or 'anonymous', session_id)
                logger.info("Reusing question set %s for %s/%s/%s", cached.id, role, level, interview_type)
                return QuestionSetResult(
                    questions=cached.questions,
                    cached=True,
                    cache_id=cached.id,
                    usage_count=cached.usage_count,
                )

        questions = self.generator.generate(role, level, interview_type, count)
        cache_id = self.cache.store(role, level, interview_type, count, questions, owner_id=user_id)
        return QuestionSetResult(questions=questions, cached=False, cache_id=cache_id, usage_count=0)
