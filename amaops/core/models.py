from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


NO_STATUS = "No Status"
NO_STATUS_VALUES = ["No Status", "–", "-", "", None]
UNASSIGNED_VALUES = ["–", "-", "", None]

CONVERTED = "Converted"
CALLBACK = "Callback"
LANGUAGE_BARRIER = "Language Barrier"
RETARGETING = "Retargeting"

LEAD_ACTIONS = {"assign", "unassign", "update_status", "update_notes"}
SALES_ROLES = ["salesperson", "sales"]

APP_USER_FIELDS = ("email", "name", "otp", "phone", "role", "start_date", "status", "topic")


class LeadActionRequest(BaseModel):
    action: Optional[str] = None
    leadIds: Optional[List[str]] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class ActorInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    id: Optional[str] = None
    uid: Optional[str] = None


class RecordPatchRequest(BaseModel):
    """Partial update for a mobile-app record; unknown keys are written as-is."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    user: Optional[ActorInfo] = None

    def updates(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class QueryPatchRequest(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    remarks: Optional[str] = None
    resolved_by: Optional[str] = None


class AppUserPatchRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None


class AnswerRequest(BaseModel):
    id: Optional[str] = None
    answer: Optional[str] = None


class NotificationRequest(BaseModel):
    user_id: Optional[str] = None
    topic: Optional[Union[str, List[str]]] = None
    n_title: Optional[str] = None
    n_body: Optional[str] = None
    send_weekly: bool = False


class Sec21NoticeRequest(BaseModel):
    ClientName: Optional[str] = None
    bankName: Optional[str] = None
    bankAddress: Optional[str] = None
    bankEmail: Optional[str] = None
    customerId: Optional[str] = None
    today: Optional[str] = None
