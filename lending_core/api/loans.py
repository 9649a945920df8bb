"""
Loan endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from .auth import Identity, LendingSystem, get_identity, get_lending_system, to_http_exception
from .schemas import CreateLoanRequest, EditLoanRequest, UpdateLoanStatusRequest
from ..errors import LendingError


router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_loan(
    request: CreateLoanRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Originate a loan on a collection line"""
    try:
        loan = system.loan_manager.originate_loan(
            tenant_id=identity.tenant_id,
            user_id=identity.user_id,
            customer_id=request.customer_id,
            line_id=request.line_id,
            principal=request.principal,
            start_date=request.start_date
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"loan": loan.to_dict(), "message": "Loan originated successfully"}


@router.get("")
def list_loans(
    status_filter: Optional[str] = Query(None, alias="status"),
    customer_id: Optional[str] = None,
    active_only: bool = False,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """List the tenant's loans"""
    try:
        loans = system.loan_manager.list_loans(
            identity.tenant_id,
            status=status_filter,
            customer_id=customer_id,
            active_only=active_only
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"loans": [loan.to_dict() for loan in loans], "count": len(loans)}


@router.get("/line/{line_id}")
def list_loans_by_line(
    line_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Active loans on a line the caller is assigned to"""
    try:
        loans = system.loan_manager.list_loans_by_line(line_id, identity.user_id, identity.tenant_id)
    except LendingError as e:
        raise to_http_exception(e)

    return {"loans": [loan.to_dict() for loan in loans], "count": len(loans)}


@router.get("/{loan_id}")
def get_loan(
    loan_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        loan = system.loan_manager.get_loan(loan_id, identity.tenant_id)
    except LendingError as e:
        raise to_http_exception(e)

    return loan.to_dict()


@router.put("/{loan_id}")
def edit_loan(
    loan_id: str,
    request: EditLoanRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Full edit: recompute figures and re-derive the balance"""
    if request.principal is None and request.start_date is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    try:
        loan = system.loan_manager.edit_loan(
            loan_id, identity.tenant_id, identity.user_id,
            principal=request.principal,
            start_date=request.start_date
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"loan": loan.to_dict(), "message": "Loan updated successfully"}


@router.patch("/{loan_id}/status")
def update_loan_status(
    loan_id: str,
    request: UpdateLoanStatusRequest,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        loan = system.loan_manager.update_status(
            loan_id, request.status, identity.tenant_id, user_id=identity.user_id
        )
    except LendingError as e:
        raise to_http_exception(e)

    return {"loan": loan.to_dict(), "message": "Loan status updated successfully"}


@router.delete("/{loan_id}")
def deactivate_loan(
    loan_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Soft delete"""
    try:
        system.loan_manager.deactivate_loan(loan_id, identity.tenant_id, user_id=identity.user_id)
    except LendingError as e:
        raise to_http_exception(e)

    return {"loan_id": loan_id, "message": "Loan deactivated successfully"}


@router.get("/{loan_id}/installments")
def list_loan_installments(
    loan_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    try:
        rows = system.ledger.list_installments(loan_id, identity.tenant_id, status=status_filter)
    except LendingError as e:
        raise to_http_exception(e)

    return {"installments": [row.to_dict() for row in rows], "count": len(rows)}


@router.post("/{loan_id}/reconcile")
def reconcile_loan(
    loan_id: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Recompute the balance from the installment history"""
    try:
        loan = system.ledger.reconcile_loan(loan_id, identity.tenant_id, user_id=identity.user_id)
    except LendingError as e:
        raise to_http_exception(e)

    return {"loan": loan.to_dict(), "message": "Loan balance reconciled"}
