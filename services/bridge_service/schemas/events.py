"""Access event shapes reported by the device, push or pull.

Known shapes:
- nested:     {"AcsEvent": {"employeeNo": "42", "time": "..."}}
- controller: {"dateTime": "...", "AccessControllerEvent": {"employeeNoString": "42"}}
- flat:       {"employeeNo": "42", "time": "..."}  (also every pulled log entry)

``parse_device_event`` turns any of them into one ``DeviceEvent`` or raises
``EventValidationError``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Optional, Union

from libs.common.errors import EventValidationError
from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)

INVALID_EVENT = "Invalid event data"


class _EmployeeFields(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    employee_no: Optional[str] = Field(default=None, alias="employeeNo")
    employee_no_string: Optional[str] = Field(default=None, alias="employeeNoString")

    @field_validator("employee_no", "employee_no_string", mode="before")
    @classmethod
    def stringify(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str):
            return v.strip() or None
        return v

    @property
    def employee(self) -> Optional[str]:
        return self.employee_no_string or self.employee_no


class FlatEvent(_EmployeeFields):
    time: Optional[str] = None

    def identity(self) -> tuple[Optional[str], Optional[str]]:
        return self.employee, self.time


class NestedAcsEvent(FlatEvent):
    acs_event: FlatEvent = Field(alias="AcsEvent")

    def identity(self) -> tuple[Optional[str], Optional[str]]:
        # Either field may sit in the envelope instead of the nested body.
        return (
            self.acs_event.employee or self.employee,
            self.acs_event.time or self.time,
        )


class ControllerEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    date_time: Optional[str] = Field(default=None, alias="dateTime")
    access_controller_event: _EmployeeFields = Field(alias="AccessControllerEvent")

    def identity(self) -> tuple[Optional[str], Optional[str]]:
        return self.access_controller_event.employee, self.date_time


def _event_shape(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        if "AcsEvent" in value:
            return "nested"
        if "AccessControllerEvent" in value:
            return "controller"
        return "flat"
    if isinstance(value, BaseModel):
        return {
            NestedAcsEvent: "nested",
            ControllerEvent: "controller",
            FlatEvent: "flat",
        }.get(type(value))
    return None


DeviceEventPayload = Annotated[
    Union[
        Annotated[NestedAcsEvent, Tag("nested")],
        Annotated[ControllerEvent, Tag("controller")],
        Annotated[FlatEvent, Tag("flat")],
    ],
    Discriminator(_event_shape),
]

_payload_adapter = TypeAdapter(DeviceEventPayload)


@dataclass(frozen=True)
class DeviceEvent:
    """Canonical access event: who, and when (as reported by the device)."""

    employee_no: str
    occurred_at: datetime

    @property
    def member_id(self) -> int:
        return int(self.employee_no)


def parse_device_event(raw: Any) -> DeviceEvent:
    """Validate a raw event of any known shape into a DeviceEvent."""
    try:
        payload = _payload_adapter.validate_python(raw)
    except ValidationError as e:
        raise EventValidationError(INVALID_EVENT) from e

    employee_no, time_str = payload.identity()
    if not employee_no or not time_str or not employee_no.isdigit():
        raise EventValidationError(INVALID_EVENT)

    try:
        occurred_at = datetime.fromisoformat(time_str.strip())
    except ValueError as e:
        raise EventValidationError(INVALID_EVENT) from e

    return DeviceEvent(employee_no=employee_no, occurred_at=occurred_at)
