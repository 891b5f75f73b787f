"""Tests for the payment state machine and the access gate."""

import pytest

from hugos.payment.models import EXPIRED, FAILED, PAID, PENDING, PaymentTransaction
from hugos.extensions import db


@pytest.fixture
def pending(payments):
    def _create(checkout_id="ws_CO_1", amount=3, interview_id="int-1", user_id="u1"):
        return payments.create_pending(
            user_id=user_id,
            interview_id=interview_id,
            phone="254712345678",
            amount=amount,
            checkout_request_id=checkout_id,
            merchant_request_id="MR_1",
        )
    return _create


class TestCreatePending:
    def test_new_transaction_is_pending_for_15_minutes(self, pending, clock):
        tx = pending()
        assert tx.id.startswith("pay_")
        assert tx.status == PENDING
        assert tx.used is False
        assert (tx.expires_at - tx.created_at).total_seconds() == 15 * 60
        assert tx.created_at == clock.now


class TestApplyCallback:
    def test_success_marks_paid_with_receipt(self, payments, pending, clock):
        pending()
        result = payments.apply_callback("ws_CO_1", 0, "Processed", receipt="QKJ123")
        assert result.status == "paid"
        assert result.transaction.status == PAID
        assert result.transaction.mpesa_receipt == "QKJ123"
        assert result.transaction.paid_at == clock.now

    def test_non_zero_code_marks_failed(self, payments, pending):
        pending()
        result = payments.apply_callback("ws_CO_1", 1032, "Request cancelled by user")
        assert result.status == "failed"
        assert result.transaction.status == FAILED
        assert result.transaction.result_code == 1032

    def test_repeated_callback_is_idempotent(self, payments, pending, clock):
        pending()
        payments.apply_callback("ws_CO_1", 0, receipt="QKJ123")
        first_paid_at = payments.get_by_checkout_id("ws_CO_1").paid_at
        clock.advance(minutes=2)
        result = payments.apply_callback("ws_CO_1", 0, receipt="OTHER")
        assert result.status == "duplicate"
        tx = payments.get_by_checkout_id("ws_CO_1")
        assert tx.paid_at == first_paid_at
        assert tx.mpesa_receipt == "QKJ123"

    def test_failure_after_success_does_not_transition(self, payments, pending):
        pending()
        payments.apply_callback("ws_CO_1", 0, receipt="QKJ123")
        assert payments.apply_callback("ws_CO_1", 1, "Failed").status == "duplicate"
        assert payments.get_by_checkout_id("ws_CO_1").status == PAID

    def test_unknown_checkout_id(self, payments):
        assert payments.apply_callback("nope", 0, receipt="R1").status == "not_found"

    def test_success_without_receipt_is_not_applied(self, payments, pending):
        pending()
        result = payments.apply_callback("ws_CO_1", 0, "Processed")
        assert result.status == "no_receipt"
        assert not result.applied
        tx = payments.get_by_checkout_id("ws_CO_1")
        assert tx.status == PENDING
        assert tx.paid_at is None
        assert not payments.has_valid_access("u1", "int-1")

        assert payments.apply_callback("ws_CO_1", 0, receipt="QKJ123").status == "paid"

    def test_late_callback_after_expiry_is_not_applied(self, payments, pending, clock):
        pending()
        clock.advance(minutes=16)
        result = payments.apply_callback("ws_CO_1", 0, receipt="LATE")
        assert result.status == "expired"
        tx = payments.get_by_checkout_id("ws_CO_1")
        assert tx.status == EXPIRED
        assert tx.mpesa_receipt is None
        assert not payments.has_valid_access("u1", "int-1")


class TestExpiry:
    def test_effective_status_is_lazy(self, payments, pending, clock):
        tx = pending()
        clock.advance(minutes=16)
        assert payments.effective_status(tx) == EXPIRED
        assert db.session.get(PaymentTransaction, tx.id).status == PENDING

    def test_expire_stale_sweeps_pending_only(self, payments, pending, clock):
        pending("ws_CO_1")
        pending("ws_CO_2")
        payments.apply_callback("ws_CO_2", 0, receipt="R2")
        clock.advance(minutes=20)
        assert payments.expire_stale() == 1
        assert payments.get_by_checkout_id("ws_CO_1").status == EXPIRED
        assert payments.get_by_checkout_id("ws_CO_2").status == PAID

    def test_mark_expired_writes_status(self, payments, pending, clock):
        tx = pending()
        clock.advance(minutes=16)
        assert payments.mark_expired(tx)
        assert tx.status == EXPIRED

    def test_mark_expired_ignores_live_pending(self, payments, pending):
        tx = pending()
        assert not payments.mark_expired(tx)
        assert tx.status == PENDING


class TestAccessGate:
    def test_paid_unused_sufficient_amount_grants_access(self, payments, pending):
        pending()
        payments.apply_callback("ws_CO_1", 0, receipt="R1")
        assert payments.has_valid_access("u1", "int-1")

    def test_pending_does_not_grant_access(self, payments, pending):
        pending()
        assert not payments.has_valid_access("u1", "int-1")

    def test_insufficient_amount_does_not_grant_access(self, payments, pending):
        pending(amount=2)
        payments.apply_callback("ws_CO_1", 0, receipt="R1")
        assert not payments.has_valid_access("u1", "int-1")

    def test_access_is_scoped_to_interview_and_user(self, payments, pending):
        pending()
        payments.apply_callback("ws_CO_1", 0, receipt="R1")
        assert not payments.has_valid_access("u1", "int-2")
        assert not payments.has_valid_access("u2", "int-1")

    def test_mark_used_consumes_exactly_once(self, payments, pending, clock):
        pending()
        payments.apply_callback("ws_CO_1", 0, receipt="R1")
        tx = payments.mark_used("u1", "int-1")
        assert tx.used is True
        assert tx.used_at == clock.now
        assert payments.mark_used("u1", "int-1") is None
        assert not payments.has_valid_access("u1", "int-1")

    def test_used_payment_is_reported(self, payments, pending):
        pending()
        payments.apply_callback("ws_CO_1", 0, receipt="R1")
        assert not payments.has_used_payment("u1", "int-1")
        payments.mark_used("u1", "int-1")
        assert payments.has_used_payment("u1", "int-1")
        assert not payments.has_used_payment("u1", "int-2")

    def test_mark_used_takes_oldest_first(self, payments, pending, clock):
        first = pending("ws_CO_1")
        clock.advance(minutes=1)
        second = pending("ws_CO_2")
        payments.apply_callback("ws_CO_2", 0, receipt="R2")
        payments.apply_callback("ws_CO_1", 0, receipt="R1")

        assert payments.mark_used("u1", "int-1").id == first.id
        assert payments.has_valid_access("u1", "int-1")
        assert payments.mark_used("u1", "int-1").id == second.id
        assert payments.mark_used("u1", "int-1") is None


class TestOpenPayment:
    def test_reuses_live_pending_payment(self, payments, pending):
        tx = pending()
        assert payments.find_open_payment("u1", "int-1").id == tx.id

    def test_ignores_expired_and_used_payments(self, payments, pending, clock):
        pending("ws_CO_1")
        clock.advance(minutes=16)
        assert payments.find_open_payment("u1", "int-1") is None

        pending("ws_CO_2")
        payments.apply_callback("ws_CO_2", 0, receipt="R2")
        payments.mark_used("u1", "int-1")
        assert payments.find_open_payment("u1", "int-1") is None

    def test_history_newest_first(self, payments, pending, clock):
        pending("ws_CO_1")
        clock.advance(minutes=1)
        pending("ws_CO_2")
        history = payments.user_history("u1")
        assert [tx.checkout_request_id for tx in history] == ["ws_CO_2", "ws_CO_1"]
