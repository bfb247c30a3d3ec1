"""Pydantic models for the Pluggy Sync service.

This module defines the models shared across the service: the aggregator credential, embedded credit-card bills, the SyncJob document polled by the client, and the request/response bodies of the HTTP API.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Credential(BaseModel):
    """Bearer credential for the aggregator API."""

    token: str
    expires_at: datetime = Field(alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)

    def is_valid(self, now: datetime) -> bool:
        """Return True while the credential has not expired."""
        return now < self.expires_at


class Bill(BaseModel):
    """A normalized credit-card billing statement."""

    id: str | None = None
    due_date: str | None = Field(default=None, alias="dueDate")
    total_amount: float | None = Field(default=None, alias="totalAmount")
    minimum_payment_amount: float | None = Field(default=None, alias="minimumPaymentAmount")
    status: str | None = None
    close_date: str | None = Field(default=None, alias="closeDate")

    model_config = ConfigDict(populate_by_name=True)


class JobStatus(str, Enum):
    """Lifecycle states of a sync job. `completed` and `failed` are terminal."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobOutcome(str, Enum):
    """How a finished job went, distinguishing full from partial success."""

    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class AccountFailure(BaseModel):
    """A non-fatal failure recorded against one account during a sync."""

    account_id: str = Field(alias="accountId")
    phase: str
    error: str

    model_config = ConfigDict(populate_by_name=True)


class SyncJob(BaseModel):
    """Progress document for one sync invocation, polled by the client."""

    id: str
    item_id: str = Field(alias="itemId")
    user_id: str = Field(alias="userId")
    status: JobStatus = JobStatus.PROCESSING
    progress: int = Field(default=0, ge=0, le=100)
    step: str | None = None
    message: str | None = None
    error: str | None = None
    outcome: JobOutcome | None = None
    account_errors: list[AccountFailure] = Field(default_factory=list, alias="accountErrors")
    failed_phases: list[str] = Field(default_factory=list, alias="failedPhases")
    created_at: str = Field(alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")
    completed_at: str | None = Field(default=None, alias="completedAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)


class SyncRequest(BaseModel):
    """Body of POST /pluggy/sync."""

    item_id: str = Field(alias="itemId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class SyncStartResponse(BaseModel):
    """Immediate response of POST /pluggy/sync."""

    success: bool = True
    sync_job_id: str = Field(alias="syncJobId")

    model_config = ConfigDict(populate_by_name=True)


class CreateTokenRequest(BaseModel):
    """Body of POST /pluggy/create-token."""

    user_id: str | None = Field(default=None, alias="userId")
    item_id: str | None = Field(default=None, alias="itemId")

    model_config = ConfigDict(populate_by_name=True)


class TriggerSyncRequest(BaseModel):
    """Body of POST /pluggy/trigger-sync."""

    item_id: str = Field(alias="itemId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class ItemSummary(BaseModel):
    """Client-facing view of an aggregator item (one bank connection)."""

    id: str
    client_user_id: str | None = Field(default=None, alias="clientUserId")
    connector: dict | None = None
    status: str | None = None
    execution_status: str | None = Field(default=None, alias="executionStatus")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)


class ItemHealth(BaseModel):
    """Connection health of an item, as reported by the aggregator."""

    id: str
    status: str | None = None
    status_detail: Any | None = Field(default=None, alias="statusDetail")
    execution_status: str | None = Field(default=None, alias="executionStatus")
    last_updated_at: str | None = Field(default=None, alias="lastUpdatedAt")
    consent_expires_at: str | None = Field(default=None, alias="consentExpiresAt")
    needs_user_action: bool = Field(default=False, alias="needsUserAction")
    consent_expiring_soon: bool = Field(default=False, alias="consentExpiringSoon")

    model_config = ConfigDict(populate_by_name=True)
