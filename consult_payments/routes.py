from fastapi import APIRouter, Depends

from consult_payments import intents, ledger, refunds
from consult_payments.auth import get_current_user_id
from consult_payments.database import SessionLocal
from consult_payments.schemas import ConfirmPaymentRequest, CreatePaymentIntentRequest

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-payment-intent")
def create_payment_intent_api(
    request: CreatePaymentIntentRequest,
    user_id: str = Depends(get_current_user_id)
):
    payment_intent_id, client_secret = intents.create_intent(
        request.amount,
        request.currency,
        request.consultationId,
        request.description,
        user_id,
    )
    return {
        "success": True,
        "clientSecret": client_secret,
        "paymentIntentId": payment_intent_id,
    }


@router.post("/confirm-payment")
def confirm_payment_api(
    request: ConfirmPaymentRequest,
    user_id: str = Depends(get_current_user_id)
):
    db = SessionLocal()
    try:
        amount = intents.confirm_payment(db, request.paymentIntentId, user_id, request.consultationId)
    finally:
        db.close()

    return {
        "success": True,
        "message": "Payment confirmed successfully",
        "paymentIntentId": request.paymentIntentId,
        "amount": float(amount),
    }


@router.get("/history")
def payment_history_api(user_id: str = Depends(get_current_user_id)):
    db = SessionLocal()
    try:
        payments = [
            {
                "id": p.id,
                "amount": float(p.amount),
                "status": p.status,
                "consultationSummary": p.consultation_summary,
                "createdAt": p.created_at.isoformat() if p.created_at else None,
            }
            for p in ledger.list_payments_for_user(db, user_id)
        ]
    finally:
        db.close()

    return {"success": True, "payments": payments}


@router.post("/{payment_id}/refund")
def refund_payment_api(payment_id: str, user_id: str = Depends(get_current_user_id)):
    db = SessionLocal()
    try:
        refund_id, amount = refunds.refund(db, payment_id, user_id)
    finally:
        db.close()

    return {
        "success": True,
        "message": "Refund processed successfully",
        "refundId": refund_id,
        "amount": float(amount),
    }
