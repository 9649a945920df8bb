"""
Installment endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .auth import Identity, LendingSystem, get_identity, get_lending_system, to_http_exception
from .schemas import MarkMissedRequest, RecordPaymentRequest, SettleInstallmentRequest
from ..errors import LendingError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def record_payment(
    request: RecordPaymentRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Record today's collection; a second call on the same day amends it"""
    try:
        installment = system.ledger.record_payment(
            loan_id=request.loan_id,
            amount=request.amount,
            cash_a=request.cash_a,
            cash_b=request.cash_b,
            collected_by=identity.user_id,
            tenant_id=identity.tenant_id
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"installment": installment.to_dict(), "message": "Installment recorded successfully"}


@router.post("/missed", status_code=status.HTTP_201_CREATED)
def mark_missed(
    request: MarkMissedRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        installment = system.ledger.mark_missed(request.loan_id, identity.tenant_id, identity.user_id)
    except LendingError as e:
        raise to_http_exception(e)

    return {"installment": installment.to_dict(), "message": "Installment marked as missed"}


@router.get("")
def list_installments(
    status_filter: Optional[str] = Query(None, alias="status"),
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """The tenant's installments, optionally filtered by status"""
    try:
        rows = system.reports.list_installments(identity.tenant_id, status=status_filter)
    except LendingError as e:
        raise to_http_exception(e)

    return {"installments": [row.to_dict() for row in rows], "count": len(rows)}


@router.get("/customer/{customer_id}")
def customer_installments(
    customer_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    rows = system.reports.installments_by_customer(customer_id, identity.tenant_id)
    return {"installments": [row.to_dict() for row in rows], "count": len(rows)}


@router.get("/today")
def todays_installments(
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    rows = system.reports.todays_installments(identity.tenant_id)
    return {"installments": [row.to_dict() for row in rows], "count": len(rows)}


@router.get("/{installment_id}")
def get_installment(
    installment_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        installment = system.ledger.get_installment(installment_id, identity.tenant_id)
    except LendingError as e:
        raise to_http_exception(e)

    return installment.to_dict()


@router.patch("/{installment_id}/paid")
def mark_fully_paid(
    installment_id: str,
    request: SettleInstallmentRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        installment = system.ledger.mark_fully_paid(
            installment_id, request.cash_a, request.cash_b, identity.user_id, identity.tenant_id
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"installment": installment.to_dict(), "message": "Installment marked as paid"}


@router.patch("/{installment_id}/partial")
def mark_partially_paid(
    installment_id: str,
    request: SettleInstallmentRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        installment = system.ledger.mark_partially_paid(
            installment_id, request.cash_a, request.cash_b, identity.user_id, identity.tenant_id
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"installment": installment.to_dict(), "message": "Installment marked as partially paid"}


@router.delete("/{installment_id}")
def delete_installment(
    installment_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Administrative delete; the loan balance is not recomputed"""
    try:
        system.ledger.delete_installment(installment_id, identity.tenant_id, user_id=identity.user_id)
    except LendingError as e:
        raise to_http_exception(e)

    return {"installment_id": installment_id, "message": "Installment deleted successfully"}
