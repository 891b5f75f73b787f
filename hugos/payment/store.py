"""
Payment transaction persistence and the interview access gate.

Status transitions are applied with conditional UPDATEs gated on
``status = 'pending'`` so repeated M-Pesa callbacks for the same
CheckoutRequestID are applied at most once across every worker.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, List, Optional

from hugos.payment.models import EXPIRED, FAILED, PAID, PENDING, PaymentTransaction
from hugos.utils.clock import utcnow

logger = logging.getLogger(__name__)

RESULT_PAID = 'paid'
RESULT_FAILED = 'failed'
RESULT_DUPLICATE = 'duplicate'
RESULT_EXPIRED = 'expired'
RESULT_NOT_FOUND = 'not_found'
RESULT_NO_RECEIPT = 'no_receipt'


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of applying a gateway callback to a transaction"""
    status: str
    transaction: Optional[PaymentTransaction] = None

    @property
    def applied(self) -> bool:
        return self.status in (RESULT_PAID, RESULT_FAILED)


class PaymentStore:

    def __init__(self, session, clock: Callable = utcnow, expiry_minutes: int = 15, required_cost: int = 3):
        self._session = session
        self._clock = clock
        self.expiry_minutes = expiry_minutes
        self.required_cost = required_cost

    def create_pending(self, user_id, phone, amount, checkout_request_id,
                       merchant_request_id=None, interview_id=None, description=None) -> PaymentTransaction:
        now = self._clock()
        transaction = PaymentTransaction(
            id=f"pay_{uuid.uuid4().hex}",
            user_id=user_id,
            interview_id=interview_id,
            phone=phone,
            amount=int(amount),
            description=description,
            status=PENDING,
            checkout_request_id=checkout_request_id,
            merchant_request_id=merchant_request_id,
            used=False,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(minutes=self.expiry_minutes),
        )
        self._session.add(transaction)
        self._session.commit()
        logger.info("Created pending payment %s for user %s (checkout %s)",
                    transaction.id, user_id, checkout_request_id)
        return transaction

    def get_by_checkout_id(self, checkout_request_id) -> Optional[PaymentTransaction]:
        return self._session.query(PaymentTransaction).filter_by(checkout_request_id=checkout_request_id).first()

    def find_open_payment(self, user_id, interview_id) -> Optional[PaymentTransaction]:
        """Most recent unused payment that is paid or still awaiting the customer's PIN"""
        now = self._clock()
        candidates = self._session.query(PaymentTransaction).filter(
            PaymentTransaction.user_id == user_id,
            PaymentTransaction.interview_id == interview_id,
            PaymentTransaction.used.is_(False),
            PaymentTransaction.status.in_([PENDING, PAID]),
        ).order_by(PaymentTransaction.created_at.desc()).all()
        for transaction in candidates:
            if transaction.effective_status(now) in (PENDING, PAID):
                return transaction
        return None

    def effective_status(self, transaction: PaymentTransaction) -> str:
        return transaction.effective_status(self._clock())

    def apply_callback(self, checkout_request_id, result_code, result_desc=None,
                       receipt=None, merchant_request_id=None) -> PaymentResult:
        """Apply a gateway result to a pending transaction exactly once"""
        now = self._clock()
        success = int(result_code) == 0
        if success and not receipt:
            # paid always carries a receipt
            transaction = self.get_by_checkout_id(checkout_request_id)
            logger.warning("Success callback for %s carries no receipt; left %s", checkout_request_id,
                           transaction.status if transaction else 'unknown')
            return PaymentResult(RESULT_NO_RECEIPT, transaction)
        values = {
            PaymentTransaction.status: PAID if success else FAILED,
            PaymentTransaction.result_code: int(result_code),
            PaymentTransaction.result_desc: result_desc,
            PaymentTransaction.updated_at: now,
        }
        if success:
            values[PaymentTransaction.mpesa_receipt] = receipt
            values[PaymentTransaction.paid_at] = now
        if merchant_request_id:
            values[PaymentTransaction.merchant_request_id] = merchant_request_id

        updated = self._session.query(PaymentTransaction).filter(
            PaymentTransaction.checkout_request_id == checkout_request_id,
            PaymentTransaction.status == PENDING,
            PaymentTransaction.expires_at >= now,
        ).update(values, synchronize_session=False)
        self._session.commit()

        transaction = self.get_by_checkout_id(checkout_request_id)

        if updated:
            logger.info("Payment %s marked %s (result %s)", checkout_request_id,
                        transaction.status, result_code)
            return PaymentResult(RESULT_PAID if success else RESULT_FAILED, transaction)

        if transaction is None:
            logger.warning("Callback for unknown checkout request %s", checkout_request_id)
            return PaymentResult(RESULT_NOT_FOUND)

        if transaction.status == PENDING:
            # Past expiry: the late result is recorded as an expiry, never as a payment
            self._expire(transaction.id, now)
            self._session.refresh(transaction)
            logger.warning("Late callback for expired payment %s (result %s) ignored",
                           checkout_request_id, result_code)
            return PaymentResult(RESULT_EXPIRED, transaction)

        logger.info("Duplicate callback for %s ignored; already %s", checkout_request_id, transaction.status)
        return PaymentResult(RESULT_DUPLICATE, transaction)

    def mark_expired(self, transaction: PaymentTransaction) -> bool:
        """Persist the expiry of a stale pending transaction"""
        now = self._clock()
        if transaction.effective_status(now) != EXPIRED or transaction.status == EXPIRED:
            return False
        changed = self._expire(transaction.id, now)
        self._session.refresh(transaction)
        return changed

    def expire_stale(self) -> int:
        now = self._clock()
        count = self._session.query(PaymentTransaction).filter(
            PaymentTransaction.status == PENDING,
            PaymentTransaction.expires_at < now,
        ).update({
            PaymentTransaction.status: EXPIRED,
            PaymentTransaction.updated_at: now,
        }, synchronize_session=False)
        self._session.commit()
        if count:
            logger.info("Expired %d stale pending payments", count)
        return count

    def has_valid_access(self, user_id, interview_id) -> bool:
        return self._eligible_query(user_id, interview_id).first() is not None

    def has_used_payment(self, user_id, interview_id) -> bool:
        """Whether a qualifying payment for the interview was already consumed"""
        return self._session.query(PaymentTransaction.id).filter(
            PaymentTransaction.user_id == user_id,
            PaymentTransaction.interview_id == interview_id,
            PaymentTransaction.status == PAID,
            PaymentTransaction.amount >= self.required_cost,
            PaymentTransaction.used.is_(True),
        ).first() is not None

    def mark_used(self, user_id, interview_id) -> Optional[PaymentTransaction]:
        """Consume the oldest unused paid transaction; None when nothing is eligible"""
        now = self._clock()
        candidates = [row.id for row in self._eligible_query(user_id, interview_id).with_entities(PaymentTransaction.id)]
        for transaction_id in candidates:
            updated = self._session.query(PaymentTransaction).filter(
                PaymentTransaction.id == transaction_id,
                PaymentTransaction.used.is_(False),
            ).update({
                PaymentTransaction.used: True,
                PaymentTransaction.used_at: now,
                PaymentTransaction.updated_at: now,
            }, synchronize_session=False)
            self._session.commit()
            if updated:
                logger.info("Payment %s used for interview %s", transaction_id, interview_id)
                return self._session.get(PaymentTransaction, transaction_id, populate_existing=True)
        return None

    def user_history(self, user_id, limit=20) -> List[PaymentTransaction]:
        return self._session.query(PaymentTransaction).filter_by(user_id=user_id).order_by(
            PaymentTransaction.created_at.desc()
        ).limit(limit).all()

    def _eligible_query(self, user_id, interview_id):
        return self._session.query(PaymentTransaction).filter(
            PaymentTransaction.user_id == user_id,
            PaymentTransaction.interview_id == interview_id,
            PaymentTransaction.status == PAID,
            PaymentTransaction.amount >= self.required_cost,
            PaymentTransaction.used.is_(False),
        ).order_by(PaymentTransaction.created_at.asc(), PaymentTransaction.id.asc())

    def _expire(self, transaction_id, now) -> bool:
        updated = self._session.query(PaymentTransaction).filter(
            PaymentTransaction.id == transaction_id,
            PaymentTransaction.status == PENDING,
        ).update({
            PaymentTransaction.status: EXPIRED,
            PaymentTransaction.updated_at: now,
        }, synchronize_session=False)
        self._session.commit()
        return updated > 0

