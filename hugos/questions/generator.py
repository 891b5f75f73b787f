import logging
import random

from hugos.errors import GenerationError
from hugos.utils.gemini import GeminiClient

logger = logging.getLogger(__name__)

MAX_QUESTIONS = 20

FALLBACK_QUESTIONS = {
    'software developer': {
        'technical': [
            "Explain the difference between var, let, and const in JavaScript.",
            "What is the virtual DOM in React and how does it improve performance?",
            "How would you optimize a slow-performing web application?",
            "Explain the concept of closures with an example.",
            "Describe the difference between SQL and NoSQL databases.",
            "How does the event loop work in Node.js?",
            "What are the main advantages of static typing?",
            "Explain server-side rendering versus client-side rendering.",
            "How would you implement authentication in a web application?",
            "How do you design a REST API that is easy to evolve?",
        ],
        'behavioral': [
            "Tell me about a time you had to solve a difficult technical problem.",
            "Describe a situation where you had to work with a difficult team member.",
            "How do you handle tight deadlines and multiple priorities?",
            "Tell me about a project you're particularly proud of and why.",
            "How do you stay updated with the latest technologies?",
            "Describe a time when you had to learn a new technology quickly.",
            "How do you approach code reviews and giving feedback to peers?",
            "Tell me about a time you made a mistake and how you handled it.",
            "How do you balance writing clean code with meeting deadlines?",
            "Describe your ideal work environment and team culture.",
        ],
        'mixed': [
            "Explain how you would design a scalable microservices architecture.",
            "What's your approach to debugging a production issue?",
            "How do you ensure code quality in a large codebase?",
            "Describe your experience with testing methodologies.",
            "How would you mentor a junior developer?",
            "What's your process for estimating project timelines?",
            "How do you handle technical debt in a project?",
            "How do you communicate technical concepts to non-technical stakeholders?",
            "What's your experience with DevOps practices?",
            "Explain your approach to system design interviews.",
        ],
    },
    'cook': {
        'technical': [
            "Explain the five mother sauces of French cuisine.",
            "How do you properly sharpen and maintain kitchen knives?",
            "Describe the Maillard reaction and its importance in cooking.",
            "What are the key differences between baking and roasting?",
            "How do you ensure food safety and prevent cross-contamination?",
            "Explain the importance of mise en place in professional kitchens.",
            "What techniques would you use to thicken a sauce?",
            "Describe the process of making a classic beef stock.",
        ],
        'behavioral': [
            "How do you handle pressure during a busy dinner service?",
            "Describe a time you had to adapt a recipe for dietary restrictions.",
            "How do you ensure consistency in dish quality?",
            "How do you stay creative and develop new menu items?",
            "Describe your experience training junior kitchen staff.",
            "How do you handle constructive criticism about your dishes?",
        ],
        'mixed': [
            "How would you design a menu for a new restaurant?",
            "What's your process for costing out a new dish?",
            "How do you ensure consistency when scaling recipes?",
            "How do you manage food waste in a professional kitchen?",
            "How do you manage time during prep for a large event?",
            "What's your approach to plating and presentation?",
        ],
    },
    'project manager': {
        'technical': [
            "Explain the difference between Agile and Waterfall methodologies.",
            "How do you create and manage a project timeline?",
            "Describe your approach to risk management in projects.",
            "What metrics do you track to measure project success?",
            "How do you handle scope creep in a project?",
            "Describe your approach to resource allocation.",
        ],
        'behavioral': [
            "Tell me about a time you had to manage a difficult stakeholder.",
            "How do you handle conflicts within a project team?",
            "Describe a project that failed and what you learned from it.",
            "How do you motivate a team during challenging projects?",
            "How do you prioritize multiple competing projects?",
            "How do you build trust with a new project team?",
        ],
        'mixed': [
            "How would you approach a project with unclear requirements?",
            "How do you ensure project quality throughout the lifecycle?",
            "How do you handle changes in requirements mid-way?",
            "How do you ensure effective communication in remote teams?",
            "How do you balance scope, time and cost?",
            "What's your philosophy on leadership in project management?",
        ],
    },
}

ROLE_CATEGORIES = {
    'frontend developer': 'software developer',
    'backend developer': 'software developer',
    'fullstack developer': 'software developer',
    'web developer': 'software developer',
    'python developer': 'software developer',
    'mobile developer': 'software developer',
    'devops engineer': 'software developer',
    'data scientist': 'software developer',
    'chef': 'cook',
    'sous chef': 'cook',
    'baker': 'cook',
    'product manager': 'project manager',
    'program manager': 'project manager',
    'scrum master': 'project manager',
    'team lead': 'project manager',
}

LEVEL_DIFFICULTY = {
    'junior': 'easy',
    'entry': 'easy',
    'mid': 'medium',
    'senior': 'hard',
    'executive': 'hard',
}


def difficulty_for(level):
    return LEVEL_DIFFICULTY.get((level or '').strip().lower(), 'medium')


class FallbackQuestionGenerator:
    """Draws questions from a built-in bank; used when no AI key is configured"""

    def __init__(self, rng=None):
        self.rng = rng or random.Random()

    def _bank_for(self, role, interview_type):
        role = (role or '').strip().lower()
        category = role if role in FALLBACK_QUESTIONS else ROLE_CATEGORIES.get(role, 'software developer')
        bank = FALLBACK_QUESTIONS[category]
        return bank.get((interview_type or '').strip().lower(), bank['mixed'])

    def generate(self, role, level, interview_type, count):
        pool = list(self._bank_for(role, interview_type))
        self.rng.shuffle(pool)
        difficulty = difficulty_for(level)
        category = (interview_type or 'mixed').strip().lower()
        return [
            {'text': text, 'category': category, 'difficulty': difficulty}
            for text in pool[:count]
        ]


class GeminiQuestionGenerator:

    def __init__(self, client: GeminiClient):
        self.client = client

    def build_prompt(self, role, level, interview_type, count):
        return (
            f'Prepare {count} questions for a job interview.\n'
            f'The job role is {role}.\n'
            f'The job experience level is {level}.\n'
            f'The focus between behavioural and technical questions should lean towards: {interview_type}.\n'
            'The questions are going to be read by a voice assistant so do not use "/" or "*" '
            'or any other special characters which might break the voice assistant.\n'
            'Return STRICT JSON ONLY: an array of objects with the keys '
            '"text", "category", "difficulty" (easy, medium or hard) and "idealAnswer".'
        )

    def generate(self, role, level, interview_type, count):
        data = self.client.generate_json(self.build_prompt(role, level, interview_type, count))
        if not isinstance(data, list):
            raise GenerationError('Gemini questions are not a JSON array')

        questions = []
        seen = set()
        for item in data:
            if isinstance(item, str):
                item = {'text': item}
            if not isinstance(item, dict):
                continue
            text = str(item.get('text') or item.get('question') or '').strip()
            if len(text) < 10 or text.lower() in seen:
                continue
            seen.add(text.lower())
            question = {
                'text': text,
                'category': str(item.get('category') or interview_type),
                'difficulty': item.get('difficulty') if item.get('difficulty') in ('easy', 'medium', 'hard')
                else difficulty_for(level),
            }
            if item.get('idealAnswer'):
                question['idealAnswer'] = str(item['idealAnswer'])
            questions.append(question)

        if not questions:
            raise GenerationError('Gemini returned no usable questions')
        return questions[:count]


def build_question_generator(config):
    api_key = config.get('GEMINI_API_KEY')
    if not api_key:
        logger.warning("GEMINI_API_KEY not set; questions come from the fallback bank")
        return FallbackQuestionGenerator()
    return GeminiQuestionGenerator(GeminiClient(
        api_key=api_key,
        model=config.get('GEMINI_MODEL', 'gemini-1.5-flash-latest'),
        timeout=config.get('AI_TIMEOUT', 60),
    ))
