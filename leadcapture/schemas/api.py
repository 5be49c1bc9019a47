"""
API request and response schemas.
Public submission bodies use the camelCase keys the embed script sends.
"""
from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class UtmParams(BaseModel):
    model_config = ConfigDict(extra="ignore")

    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    term: Optional[str] = None
    content: Optional[str] = None


class LeadSubmissionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(alias="formId")
    data: dict[str, Any] = Field(default_factory=dict)
    recaptcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")
    utm: Optional[UtmParams] = None
    referrer_url: Optional[str] = Field(default=None, alias="referrerUrl")
    landing_page_url: Optional[str] = Field(default=None, alias="landingPageUrl")


class LeadSubmissionResponse(BaseModel):
    id: str


class StageChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stage_id: Optional[str] = Field(default=None, alias="stageId")


class LeadRow(BaseModel):
    id: str
    data: dict[str, Any]
    stage: str
    source: str
    created_at: datetime


class LeadListResponse(BaseModel):
    leads: list[LeadRow]
    total: int
    page: int
    pages: int


class WebhookCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    url: str = ""
    trigger_event: str = Field(default="lead.created", alias="triggerEvent")
    secret_key: Optional[str] = Field(default=None, alias="secretKey")
    active: bool = True


class WebhookUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    url: Optional[str] = None
    trigger_event: Optional[str] = Field(default=None, alias="triggerEvent")
    secret_key: Optional[str] = Field(default=None, alias="secretKey")
    active: Optional[bool] = None


class WebhookResponse(BaseModel):
    id: str
    name: str
    url: str
    trigger_event: str
    has_secret: bool
    active: bool
    created_at: Optional[datetime] = None


class WebhookTestResponse(BaseModel):
    success: bool
    status_code: Optional[int] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None


class WebhookLogEntry(BaseModel):
    id: str
    webhook_id: str
    webhook_name: str
    event: str
    target_url: str
    status: str
    http_status: Optional[int] = None
    response_time_ms: Optional[int] = None
    attempt_count: int
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class WebhookLogListResponse(BaseModel):
    logs: list[WebhookLogEntry]
    total: int
    page: int
    per_page: int
