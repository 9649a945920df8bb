"""
Pydantic schemas for API requests
"""

from typing import Optional
from pydantic import BaseModel, Field


# Loan schemas
class CreateLoanRequest(BaseModel):
    customer_id: str
    line_id: str
    principal: str = Field(..., description="Decimal amount as string")
    start_date: str = Field(..., description="ISO date string")


class EditLoanRequest(BaseModel):
    principal: Optional[str] = None
    start_date: Optional[str] = None


class UpdateLoanStatusRequest(BaseModel):
    status: str = Field(..., description="ONGOING, COMPLETED, PENDING or NIL")


# Installment schemas
class RecordPaymentRequest(BaseModel):
    loan_id: str
    amount: str = Field(..., description="Must equal cash_a + cash_b")
    cash_a: str = Field("0", description="Cash in hand")
    cash_b: str = Field("0", description="Electronic payment")


class MarkMissedRequest(BaseModel):
    loan_id: str


class SettleInstallmentRequest(BaseModel):
    cash_a: str = "0"
    cash_b: str = "0"
