# cansend/schemas.py
from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TransferStatus = Literal["yes", "no", "maybe"]
ResultSource = Literal["route", "ai", "fallback"]


class PSPOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    name: str
    display_name: str
    logo_url: Optional[str] = None
    website_url: Optional[str] = None
    affiliate_template: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True


class CurrencyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    code: str
    name: str
    symbol: Optional[str] = None
    flag_url: Optional[str] = None
    is_active: bool = True


class RouteRecord(BaseModel):
    """Detached copy of a transfer_routes row."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    from_psp_id: str
    to_psp_id: str
    currency_id: str
    is_supported: bool
    confidence_level: Optional[int] = Field(default=None, ge=0, le=100)
    estimated_fee_percentage: Optional[float] = Field(default=None, ge=0)
    estimated_time_hours: Optional[float] = Field(default=None, ge=0)
    kyc_required: Optional[bool] = None
    notes: Optional[str] = None


class AIInsight(BaseModel):
    """Ephemeral model estimate for one query. Never persisted."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_supported: bool = Field(alias="isSupported")
    confidence: int = Field(ge=0, le=100)
    estimated_fee: Optional[float] = Field(default=None, alias="estimatedFee", ge=0)
    estimated_time: Optional[float] = Field(default=None, alias="estimatedTime", ge=0)
    notes: str = ""
    source_info: str = Field(default="", alias="sourceInfo")


class TransferQuery(BaseModel):
    from_psp_id: str = Field(min_length=1)
    to_psp_id: str = Field(min_length=1)
    currency_id: str = Field(min_length=1)

    @field_validator("from_psp_id", "to_psp_id", "currency_id")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def _distinct_providers(self) -> "TransferQuery":
        if self.from_psp_id == self.to_psp_id:
            raise ValueError("from_psp_id and to_psp_id must be different providers")
        return self


class TransferDisplay(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: TransferStatus
    status_color: str
    source: ResultSource
    route_id: Optional[str] = None
    is_supported: bool = False
    confidence_level: Optional[int] = None
    estimated_fee_percentage: Optional[float] = None
    estimated_time_hours: Optional[float] = None
    kyc_required: Optional[bool] = None
    notes: Optional[str] = None
    affiliate_url: Optional[str] = None

    from_psp: Optional[PSPOut] = None
    to_psp: Optional[PSPOut] = None
    currency: Optional[CurrencyOut] = None
