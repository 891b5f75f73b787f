"""
Feedback generators.

Both implementations turn a transcript (an ordered list of ``{role, content}``
turns) into the feedback artifact stored in the cache:
``totalScore``, ``categoryScores``, ``strengths``, ``areasForImprovement``
and ``finalAssessment``.
"""
import json
import logging

from hugos.errors import GenerationError
from hugos.utils.gemini import GeminiClient

logger = logging.getLogger(__name__)

TECHNICAL_TERMS = (
    'experience', 'skill', 'knowledge', 'project', 'work',
    'build', 'create', 'develop', 'technical', 'learned',
)

FEEDBACK_SCHEMA = {
    'totalScore': 'number 0-100',
    'categoryScores': [{'name': 'string', 'score': 'number 0-100', 'comment': 'string'}],
    'strengths': ['string'],
    'areasForImprovement': ['string'],
    'finalAssessment': 'string',
}


def qa_pairs(transcript):
    """Pair each interviewer turn with the candidate answer that follows it"""
    pairs = []
    i = 0
    while i < len(transcript) - 1:
        turn, following = transcript[i], transcript[i + 1]
        if turn.get('role') == 'assistant' and following.get('role') == 'user':
            pairs.append((turn.get('content', ''), following.get('content', '')))
            i += 2
        else:
            i += 1
    return pairs


def _clamp(value, low, high=100):
    return min(high, max(low, int(value)))


class HeuristicFeedbackGenerator:
    """Scores answers by length and vocabulary; used when no AI key is configured"""

    source = 'heuristic'

    def generate(self, transcript):
        pairs = qa_pairs(transcript)
        if not pairs:
            total_score = tech_score = comm_score = 50
        else:
            avg_length = sum(len(answer) for _, answer in pairs) / len(pairs)
            tech_count = sum(
                1 for _, answer in pairs for term in TECHNICAL_TERMS if term in answer.lower()
            )
            total_score = _clamp(60 + avg_length // 5 + tech_count * 3, 50)
            tech_score = _clamp(65 + tech_count * 8, 40)
            comm_score = _clamp(70 + avg_length // 8, 50)

        if len(pairs) > 2:
            strengths = ['Good response depth', 'Relevant examples provided', 'Clear communication']
        elif pairs:
            strengths = ['Responded to questions', 'Completed interview']
        else:
            strengths = ['Interview attempted']

        if pairs:
            verdict = 'Shows strong potential.' if total_score >= 80 else 'Demonstrates basic competency.'
            assessment = f'Candidate completed interview with {len(pairs)} questions answered. {verdict}'
        else:
            assessment = 'Minimal interview data available for assessment.'

        return {
            'totalScore': total_score,
            'categoryScores': [
                {'name': 'Technical Knowledge', 'score': tech_score,
                 'comment': 'Basic technical understanding demonstrated'},
                {'name': 'Communication', 'score': comm_score,
                 'comment': 'Clear expression of thoughts' if pairs else 'Minimal responses provided'},
                {'name': 'Problem Solving', 'score': (tech_score + comm_score) // 2,
                 'comment': 'Shows logical thinking approach'},
            ],
            'strengths': strengths,
            'areasForImprovement': [
                'Could provide more specific examples',
                'Expand on technical details',
                'Structure responses more clearly',
            ],
            'finalAssessment': assessment,
        }


class GeminiFeedbackGenerator:

    source = 'gemini'

    def __init__(self, client: GeminiClient):
        self.client = client

    def build_prompt(self, transcript):
        formatted = ''.join(f'Q: {question}\nA: {answer}\n' for question, answer in qa_pairs(transcript))
        return (
            'Analyze this interview transcript and return STRICT JSON ONLY\n'
            'matching this schema:\n\n'
            f'{json.dumps(FEEDBACK_SCHEMA, indent=2)}\n\n'
            f'Transcript:\n{formatted}'
        )

    def generate(self, transcript):
        data = self.client.generate_json(self.build_prompt(transcript))
        if not isinstance(data, dict):
            raise GenerationError('Gemini feedback is not a JSON object')

        categories = data.get('categoryScores')
        strengths = data.get('strengths')
        improvements = data.get('areasForImprovement')
        try:
            total_score = float(data.get('totalScore') or 0)
            category_scores = [
                {
                    'name': str(category.get('name') or ''),
                    'score': float(category.get('score') or 0),
                    'comment': str(category.get('comment') or ''),
                }
                for category in (categories if isinstance(categories, list) else [])
                if isinstance(category, dict)
            ]
        except (TypeError, ValueError) as e:
            raise GenerationError('Gemini feedback has non-numeric scores') from e

        return {
            'totalScore': total_score,
            'categoryScores': category_scores,
            'strengths': strengths if isinstance(strengths, list) else [],
            'areasForImprovement': improvements if isinstance(improvements, list) else [],
            'finalAssessment': str(data.get('finalAssessment') or ''),
        }


def build_feedback_generator(config):
    api_key = config.get('GEMINI_API_KEY')
    if not api_key:
        logger.warning("GEMINI_API_KEY not set; feedback uses the heuristic scorer")
        return HeuristicFeedbackGenerator()
    return GeminiFeedbackGenerator(GeminiClient(
        api_key=api_key,
        model=config.get('GEMINI_MODEL', 'gemini-1.5-flash-latest'),
        timeout=config.get('AI_TIMEOUT', 60),
    ))
