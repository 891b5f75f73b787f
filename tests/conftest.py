"""Shared test fixtures: an in-memory app with fake gateway, generators and clock."""

from datetime import datetime, timedelta
from itertools import count

import pytest

from config import TestingConfig
from hugos import create_app
from hugos.errors import GenerationError, MpesaError
from hugos.extensions import db
from hugos.payment.mpesa_service import MpesaService, StkPushResponse, StkQueryResponse


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2025, 3, 1, 9, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeMpesaService(MpesaService):
    """Daraja stand-in: STK pushes always succeed and are recorded"""

    def __init__(self):
        super().__init__(
            consumer_key="test-key",
            consumer_secret="test-secret",
            business_short_code="174379",
            passkey="test-passkey",
            callback_url="http://localhost/api/mpesa/callback",
        )
        self.pushes = []
        self.query_response = StkQueryResponse(result_code=None, result_desc="pending")
        self.fail_push = False
        self._ids = count(1)

    def initiate_stk_push(self, phone_number, amount, account_reference, transaction_desc):
        if self.fail_push:
            raise MpesaError("gateway unavailable")
        n = next(self._ids)
        self.pushes.append({"phone": phone_number, "amount": amount, "reference": account_reference})
        return StkPushResponse(
            checkout_request_id=f"ws_CO_{n:04d}",
            merchant_request_id=f"MR_{n:04d}",
            customer_message="Success. Request accepted for processing",
        )

    def query_stk_push_status(self, checkout_request_id):
        if isinstance(self.query_response, Exception):
            raise self.query_response
        return self.query_response


SAMPLE_FEEDBACK = {
    "totalScore": 78,
    "categoryScores": [
        {"name": "Technical Knowledge", "score": 80, "comment": "Solid fundamentals"},
        {"name": "Communication", "score": 76, "comment": "Clear answers"},
    ],
    "strengths": ["Structured answers"],
    "areasForImprovement": ["More concrete examples"],
    "finalAssessment": "Good candidate.",
}


class FakeFeedbackGenerator:
    source = "gemini"

    def __init__(self):
        self.calls = 0
        self.fail = False

    def generate(self, transcript):
        self.calls += 1
        if self.fail:
            raise GenerationError("model overloaded")
        return dict(SAMPLE_FEEDBACK)


class FakeQuestionGenerator:
    def __init__(self):
        self.calls = 0
        self.fail = False

    def generate(self, role, level, interview_type, count):
        self.calls += 1
        if self.fail:
            raise GenerationError("model overloaded")
        return [
            {"text": f"{role} question {i + 1}?", "category": interview_type, "difficulty": "medium"}
            for i in range(count)
        ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mpesa():
    return FakeMpesaService()


@pytest.fixture
def feedback_generator():
    return FakeFeedbackGenerator()


@pytest.fixture
def question_generator():
    return FakeQuestionGenerator()


@pytest.fixture
def app(clock, mpesa, feedback_generator, question_generator):
    app = create_app(
        TestingConfig,
        mpesa_service=mpesa,
        feedback_generator=feedback_generator,
        question_generator=question_generator,
        clock=clock,
    )
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def feedback_cache(app):
    return app.extensions["feedback_cache"]


@pytest.fixture
def question_cache(app):
    return app.extensions["question_cache"]


@pytest.fixture
def payments(app):
    return app.extensions["payment_store"]


@pytest.fixture
def transcript():
    return [
        {"role": "assistant", "content": "Tell me about a project you built."},
        {"role": "user", "content": "I built a payments dashboard with Flask and Postgres."},
        {"role": "assistant", "content": "What was the hardest part?"},
        {"role": "user", "content": "Reconciling webhook retries without double counting."},
    ]
