import json

from flask import Blueprint, current_app, jsonify, request

from hugos.errors import MpesaError, ValidationError
from hugos.extensions import db
from hugos.payment.models import EXPIRED, PAID, PENDING
from hugos.payment.mpesa_service import normalize_phone
from hugos.utils.validation import json_body, optional_field, require_fields

payment_bp = Blueprint('payment', __name__, url_prefix='/api')


def _store():
    return current_app.extensions['payment_store']


def _mpesa():
    return current_app.extensions['mpesa_service']


@payment_bp.route('/mpesa/pay', methods=['POST'])
def initiate_payment():
    """Send an STK push to the customer's phone for one interview"""
    data = json_body()
    phone, interview_type, user_id = require_fields(data, 'phone', 'interviewType', 'userId', kind=str)
    interview_id = optional_field(data, 'interviewId')
    phone = normalize_phone(phone)

    pricing = current_app.config['INTERVIEW_PRICING'].get(interview_type)
    if pricing is None:
        raise ValidationError(f'Unknown interview type: {interview_type}', fields=['interviewType'])
    amount = pricing['price']

    store = _store()
    existing = store.find_open_payment(user_id, interview_id)
    if existing is not None:
        current_app.logger.info(f'Reusing payment {existing.id} for user {user_id}')
        return jsonify({
            'success': True,
            'reused': True,
            'status': store.effective_status(existing),
            'checkoutRequestId': existing.checkout_request_id,
            'amount': existing.amount,
            'paymentId': existing.id,
        })

    try:
        stk_response = _mpesa().initiate_stk_push(
            phone_number=phone,
            amount=amount,
            account_reference=f"INTERVIEW-{interview_id or user_id}"[:12],
            transaction_desc=pricing['description'],
        )
    except MpesaError as e:
        current_app.logger.error(f'M-Pesa STK push failed: {str(e)}')
        return jsonify({
            'success': False,
            'message': 'Payment processing failed'
        }), 502

    try:
        transaction = store.create_pending(
            user_id=user_id,
            interview_id=interview_id,
            phone=phone,
            amount=amount,
            description=pricing['description'],
            checkout_request_id=stk_response.checkout_request_id,
            merchant_request_id=stk_response.merchant_request_id,
        )
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Saving payment {stk_response.checkout_request_id} failed: {str(e)}')
        raise

    return jsonify({
        'success': True,
        'message': stk_response.customer_message or 'STK push sent successfully',
        'checkoutRequestId': transaction.checkout_request_id,
        'amount': transaction.amount,
        'paymentId': transaction.id,
    })


@payment_bp.route('/mpesa/callback', methods=['POST'])
def mpesa_callback():
    """Handle M-Pesa callback"""
    try:
        data = request.get_json(silent=True)
        current_app.logger.info(f'M-Pesa callback received: {json.dumps(data)}')

        callback = _mpesa().parse_callback(data)
        result = _store().apply_callback(
            checkout_request_id=callback.checkout_request_id,
            result_code=callback.result_code,
            result_desc=callback.result_desc,
            receipt=callback.receipt_number,
            merchant_request_id=callback.merchant_request_id,
        )
        if result.applied:
            current_app.logger.info(f'Payment {callback.checkout_request_id} {result.status}')
        else:
            current_app.logger.warning(f'Callback for {callback.checkout_request_id} not applied: {result.status}')
    except Exception as e:
        # Daraja always gets 200; failures stay in our logs
        db.session.rollback()
        current_app.logger.error(f'Error processing M-Pesa callback: {str(e)}')

    return jsonify({'ResultCode': 0, 'ResultDesc': 'Accepted'})


@payment_bp.route('/mpesa/status', methods=['GET'])
def payment_status():
    """Status of a payment, asking the gateway while it is still pending.

    The gateway's answer is reported as-is; only the callback moves a
    pending payment to paid or failed.
    """
    checkout_id = request.args.get('checkoutId')
    if not checkout_id:
        raise ValidationError('checkoutId is required', fields=['checkoutId'])

    store = _store()
    transaction = store.get_by_checkout_id(checkout_id)
    if transaction is None:
        return jsonify({'success': False, 'message': 'Payment not found'}), 404

    gateway = None
    status = store.effective_status(transaction)
    if status == EXPIRED and transaction.status == PENDING:
        store.mark_expired(transaction)
    elif status == PENDING:
        try:
            query = _mpesa().query_stk_push_status(checkout_id)
            if query.rate_limited:
                current_app.logger.info(f'STK query for {checkout_id} throttled; retry in {query.retry_after}s')
            gateway = {
                'resultCode': query.result_code,
                'resultDesc': query.result_desc,
                'rateLimited': query.rate_limited,
                'retryAfter': query.retry_after,
            }
        except MpesaError as e:
            # Daraja answers with an error while the customer has not responded yet
            current_app.logger.warning(f'STK status query for {checkout_id} failed: {str(e)}')

    return jsonify({
        'success': True,
        'status': status,
        'paid': status == PAID,
        'gateway': gateway,
        'payment': transaction.to_dict(now=current_app.extensions['clock']()),
    })


@payment_bp.route('/payment/check', methods=['POST'])
def check_payment():
    """Whether the user holds an unused paid transaction for the interview"""
    data = json_body()
    interview_id, user_id = require_fields(data, 'interviewId', 'userId', kind=str)
    store = _store()
    has_paid = store.has_valid_access(user_id, interview_id)
    return jsonify({
        'success': True,
        'hasPaid': has_paid,
        'paymentExistsButUsed': not has_paid and store.has_used_payment(user_id, interview_id),
        'cost': current_app.config['INTERVIEW_COST'],
        'currency': current_app.config['PAYMENT_CURRENCY'],
    })


@payment_bp.route('/payment/mark-used', methods=['POST'])
def mark_payment_used():
    data = json_body()
    interview_id, user_id = require_fields(data, 'interviewId', 'userId', kind=str)

    transaction = _store().mark_used(user_id, interview_id)
    if transaction is None:
        return jsonify({
            'success': False,
            'message': 'No unused paid transaction found'
        }), 404

    return jsonify({
        'success': True,
        'message': 'Payment marked as used',
        'paymentId': transaction.id,
    })


@payment_bp.route('/payment/history', methods=['GET'])
def payment_history():
    user_id = request.args.get('userId')
    if not user_id:
        raise ValidationError('userId is required', fields=['userId'])
    limit = request.args.get('limit', 20, type=int)

    now = current_app.extensions['clock']()
    transactions = _store().user_history(user_id, limit=max(1, min(limit, 100)))
    return jsonify({
        'success': True,
        'payments': [transaction.to_dict(now=now) for transaction in transactions],
    })
