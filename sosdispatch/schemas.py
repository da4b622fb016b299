"""Request body models.

Bodies arrive in camelCase from the web client; snake_case is accepted too.
The structured ``medicalInfo`` records replace the free-form blobs the
frontend used to send, and are the only shape written to the JSON columns.
"""

import logging
from typing import List, Optional

from flask import request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .enums import (
    EmergencyGrade,
    EmergencyStatus,
    OrganizationStatus,
    ResponseStatus,
    UserRole,
)
from .errors import ValidationError

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    def dump(self):
        """camelCase dict without unset fields, for JSON columns"""
        return self.model_dump(by_alias=True, exclude_none=True, mode='json')


def parse_body(model):
    """Validate the current request's JSON body against ``model``"""
    return model.model_validate(request.get_json(silent=True) or {})


# ==================== EMERGENCY REQUESTS ====================

class MedicalInfo(CamelModel):
    model_config = ConfigDict(extra='forbid')

    grade: Optional[EmergencyGrade] = None
    severity: Optional[int] = Field(None, ge=1, le=4)
    symptoms: List[str] = Field(default_factory=list)
    emergency_type: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('grade', mode='before')
    @classmethod
    def _parse_grade(cls, value):
        return None if value is None else EmergencyGrade.parse(value)

    @field_validator('symptoms', mode='before')
    @classmethod
    def _symptom_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [s.strip() for s in value.split(',') if s.strip()]
        return value


def read_medical_info(blob):
    """Best-effort read of a stored medical info blob, None when unreadable"""
    if not blob:
        return None
    try:
        return MedicalInfo.model_validate(blob)
    except (PydanticValidationError, ValidationError) as e:
        logger.debug(f"Unreadable medicalInfo: {e}")
        return None


class CreateEmergencyRequest(CamelModel):
    type: str = Field(..., min_length=1)
    description: str = ''
    location: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    grade: EmergencyGrade
    medical_info: Optional[MedicalInfo] = None
    patient_id: Optional[str] = None

    @field_validator('grade', mode='before')
    @classmethod
    def _parse_grade(cls, value):
        return EmergencyGrade.parse(value)


class UpdateEmergencyStatus(CamelModel):
    status: EmergencyStatus
    notes: Optional[str] = None

    @field_validator('status', mode='before')
    @classmethod
    def _parse_status(cls, value):
        return EmergencyStatus.parse(value)


class AssignHospital(CamelModel):
    hospital_id: str


# ==================== DASHBOARD ====================

class AssignCase(CamelModel):
    case_id: str
    assigned_to_id: str
    notes: Optional[str] = None


class CancelCase(CamelModel):
    case_id: str
    reason: Optional[str] = None


# ==================== HOSPITALS & RESCUE TEAMS ====================

class HospitalCapacity(CamelModel):
    model_config = ConfigDict(extra='forbid')

    total_beds: Optional[int] = Field(None, ge=0)
    available_beds: int = Field(..., ge=0)
    icu_beds: Optional[int] = Field(None, ge=0)
    available_icu_beds: Optional[int] = Field(None, ge=0)


class StaffInfo(CamelModel):
    model_config = ConfigDict(extra='forbid')

    doctors: Optional[int] = Field(None, ge=0)
    nurses: Optional[int] = Field(None, ge=0)
    paramedics: Optional[int] = Field(None, ge=0)


class AmbulanceInfo(CamelModel):
    model_config = ConfigDict(extra='forbid')

    total: Optional[int] = Field(None, ge=0)
    available: Optional[int] = Field(None, ge=0)


class OrganizationMedicalInfo(CamelModel):
    model_config = ConfigDict(extra='forbid')

    capacity: Optional[HospitalCapacity] = None
    staff: Optional[StaffInfo] = None
    ambulances: Optional[AmbulanceInfo] = None
    current_emergency_id: Optional[str] = None
    notes: Optional[str] = None


class OrganizationFields(CamelModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    available_beds: Optional[int] = Field(None, ge=0)
    medical_info: Optional[OrganizationMedicalInfo] = None
    vehicle_types: Optional[List[str]] = None


class CreateOrganization(OrganizationFields):
    name: str = Field(..., min_length=1)


class UpdateOrganization(OrganizationFields):
    name: Optional[str] = Field(None, min_length=1)


class AcceptEmergency(CamelModel):
    emergency_id: str
    notes: Optional[str] = None


class ResponseStatusUpdate(CamelModel):
    status: ResponseStatus

    @field_validator('status', mode='before')
    @classmethod
    def _parse_status(cls, value):
        return ResponseStatus.parse(value)


class RescueTeamStatusUpdate(CamelModel):
    status: OrganizationStatus
    notes: Optional[str] = None
    current_emergency_id: Optional[str] = None

    @field_validator('status', mode='before')
    @classmethod
    def _parse_status(cls, value):
        return OrganizationStatus.parse(value)


# ==================== AUTH & SETTINGS ====================

class RegisterUser(CamelModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    first_name: str = ''
    last_name: str = ''
    phone: Optional[str] = None
    role: UserRole = UserRole.PATIENT
    organization_id: Optional[str] = None

    @field_validator('role', mode='before')
    @classmethod
    def _parse_role(cls, value):
        return UserRole.PATIENT if value is None else UserRole.parse(value)

    @field_validator('email')
    @classmethod
    def _normalize_email(cls, value):
        value = value.strip().lower()
        if '@' not in value:
            raise ValueError('email must contain @')
        return value


class LoginUser(CamelModel):
    email: str
    password: str


class RefreshToken(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class OAuthLogin(CamelModel):
    provider: str


class UpdateSettings(CamelModel):
    notification_settings: Optional[dict] = None
    system_settings: Optional[dict] = None
    communication_settings: Optional[dict] = None
    profile_settings: Optional[dict] = None
    emergency_settings: Optional[dict] = None
