from hugos.extensions import db
from hugos.utils.clock import utcnow

PENDING = 'pending'
PAID = 'paid'
FAILED = 'failed'
EXPIRED = 'expired'


class PaymentTransaction(db.Model):
    __tablename__ = 'payment_transactions'

    id = db.Column(db.String(40), primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    interview_id = db.Column(db.String(128), nullable=True, index=True)
    phone = db.Column(db.String(15), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default=PENDING)  # pending, paid, failed, expired

    # Correlation identifiers assigned by the M-Pesa gateway
    checkout_request_id = db.Column(db.String(100), unique=True, nullable=False)
    merchant_request_id = db.Column(db.String(100))
    mpesa_receipt = db.Column(db.String(50))
    result_code = db.Column(db.Integer)
    result_desc = db.Column(db.String(255))

    # Consumption of a paid transaction to unlock one interview
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    paid_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def effective_status(self, now):
        """Status with lazy expiry applied to stale pending transactions"""
        if self.status == PENDING and now > self.expires_at:
            return EXPIRED
        return self.status

    def to_dict(self, now=None):
        return {
            'id': self.id,
            'userId': self.user_id,
            'interviewId': self.interview_id,
            'phone': self.phone,
            'amount': self.amount,
            'description': self.description,
            'status': self.effective_status(now) if now else self.status,
            'checkoutRequestId': self.checkout_request_id,
            'merchantRequestId': self.merchant_request_id,
            'mpesaReceipt': self.mpesa_receipt,
            'used': self.used,
            'usedAt': self.used_at.isoformat() if self.used_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'paidAt': self.paid_at.isoformat() if self.paid_at else None,
            'expiresAt': self.expires_at.isoformat() if self.expires_at else None,
        }

    def __repr__(self):
        return f'<PaymentTransaction {self.checkout_request_id} - {self.status}>'
