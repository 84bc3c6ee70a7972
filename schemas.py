from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# --------------------
# Auth
# --------------------
@dataclass(frozen=True)
class AuthSession:
    """An authenticated caller: who they are and the bearer token they used."""

    user_id: str
    access_token: str



class RegisterIn(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = Field(None, max_length=200)


class LoginIn(BaseModel):
    email: EmailStr
    password: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    approval_status: Optional[str] = None
    created_at: Optional[datetime] = None


class ApprovalOut(BaseModel):
    approval_status: Optional[Literal["pending", "approved", "rejected"]] = None


class RoleOut(BaseModel):
    role: Literal["admin", "user"]


# --------------------
# Admin
# --------------------
class AdminUserOut(BaseModel):
    id: str
    full_name: Optional[str] = None
    approval_status: Literal["pending", "approved", "rejected"]
    created_at: Optional[datetime] = None
    email: Optional[str] = None


class ApprovalIn(BaseModel):
    # "pending" is never written by an admin
    status: Literal["approved", "rejected"]


# --------------------
# Functions (Plaid proxy + delete-user)
# --------------------
class _CamelIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CreateLinkTokenIn(_CamelIn):
    user_id: str = Field(..., alias="userId", min_length=1)
    access_token: Optional[str] = Field(None, alias="accessToken")


class LinkTokenOut(BaseModel):
    link_token: str


class ExchangeTokenIn(_CamelIn):
    public_token: str = Field(..., alias="publicToken", min_length=1)
    user_id: Optional[str] = Field(None, alias="userId")


class AccessTokenOut(BaseModel):
    access_token: str


class FetchDataIn(_CamelIn):
    access_token: str = Field(..., alias="accessToken", min_length=1)
    user_id: Optional[str] = Field(None, alias="userId")
    days_back: int = Field(90, alias="daysBack", gt=0)
    max_transactions: int = Field(2000, alias="maxTransactions", gt=0)


class DateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")


class FetchMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_transactions: int = Field(..., alias="totalTransactions")
    total_available: int = Field(..., alias="totalAvailable")
    date_range: DateRange = Field(..., alias="dateRange")
    days_back: int = Field(..., alias="daysBack")
    request_count: int = Field(..., alias="requestCount")
    has_investment_data: bool = Field(False, alias="hasInvestmentData")
    extended_range_tried: bool = Field(False, alias="extendedRangeTried")
    error: Optional[str] = None


class FetchDataOut(BaseModel):
    accounts: list[dict[str, Any]]
    transactions: list[dict[str, Any]]
    holdings: list[dict[str, Any]] = []
    securities: list[dict[str, Any]] = []
    metadata: FetchMetadata

    @property
    def warning(self) -> Optional[str]:
        """Set when the data came back without transactions."""
        return self.metadata.error


class DeleteUserIn(_CamelIn):
    user_id: Optional[str] = Field(None, alias="userId")


class DeleteUserOut(BaseModel):
    success: bool
