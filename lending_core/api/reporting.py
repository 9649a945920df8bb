"""
Reporting endpoints
"""

from fastapi import APIRouter, Depends, Query

from .auth import Identity, LendingSystem, get_identity, get_lending_system, to_http_exception
from ..errors import LendingError


router = APIRouter()


@router.get("/loans")
def loan_stats(
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    return system.reports.loan_stats(identity.tenant_id).to_dict()


@router.get("/loans/analytics")
def loan_analytics(
    from_date: str,
    to_date: str,
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """New-loan totals for a created-at date range"""
    try:
        result = system.reports.loan_analytics(identity.tenant_id, from_date, to_date)
    except LendingError as e:
        raise to_http_exception(e)

    return result.to_dict()


@router.get("/installments")
def installment_stats(
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    return system.reports.installment_stats(identity.tenant_id).to_dict()


@router.get("/lines/{line_id}/collections")
def line_collections(
    line_id: str,
    days: int = Query(7, ge=1, le=366),
    identity: Identity = Depends(get_identity),
    system: LendingSystem = Depends(get_lending_system)
):
    """Per-day collected totals on a line"""
    try:
        result = system.reports.collection_totals_by_line(
            line_id, identity.user_id, identity.tenant_id, days=days
        )
    except LendingError as e:
        raise to_http_exception(e)

    return result.to_dict()
