"""Shared status and role enumerations.

Every status string that enters the API goes through ``parse`` exactly once.
It is case-insensitive and treats ``-``, ``_`` and spaces alike, so
``"in-progress"``, ``"In Progress"`` and ``"IN_PROGRESS"`` all map to the
same member. Anything else is rejected with a ``ValidationError``.
"""

from enum import Enum

from .errors import ValidationError


class ParsableEnum(str, Enum):

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if value is None:
            raise ValidationError(f"{cls.label()} is required")
        key = str(value).strip().upper().replace('-', '_').replace(' ', '_')
        try:
            return cls[key]
        except KeyError:
            valid = ', '.join(member.value for member in cls)
            raise ValidationError(f"Invalid {cls.label()}: {value}. Valid values are: {valid}") from None

    @classmethod
    def label(cls):
        return ''.join(f" {c.lower()}" if c.isupper() else c for c in cls.__name__).strip()

    def __str__(self):
        return self.value


class UserRole(ParsableEnum):
    ADMIN = 'ADMIN'
    EMERGENCY_CENTER = 'EMERGENCY_CENTER'
    HOSPITAL = 'HOSPITAL'
    RESCUE_TEAM = 'RESCUE_TEAM'
    PATIENT = 'PATIENT'


RESPONDER_ROLES = (UserRole.EMERGENCY_CENTER, UserRole.HOSPITAL, UserRole.RESCUE_TEAM)
STAFF_ROLES = (UserRole.ADMIN,) + RESPONDER_ROLES


class UserStatus(ParsableEnum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'


class OrganizationType(ParsableEnum):
    HOSPITAL = 'HOSPITAL'
    RESCUE_TEAM = 'RESCUE_TEAM'


class OrganizationStatus(ParsableEnum):
    ACTIVE = 'ACTIVE'
    INACTIVE = 'INACTIVE'
    AVAILABLE = 'AVAILABLE'
    BUSY = 'BUSY'
    OFFLINE = 'OFFLINE'


ON_DUTY_STATUSES = (OrganizationStatus.ACTIVE, OrganizationStatus.AVAILABLE, OrganizationStatus.BUSY)


class EmergencyStatus(ParsableEnum):
    PENDING = 'PENDING'
    ASSIGNED = 'ASSIGNED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'

    @property
    def is_terminal(self):
        return self in (EmergencyStatus.COMPLETED, EmergencyStatus.CANCELLED)


ACTIVE_EMERGENCY_STATUSES = (EmergencyStatus.PENDING, EmergencyStatus.ASSIGNED, EmergencyStatus.IN_PROGRESS)


class ResponseStatus(ParsableEnum):
    ACCEPTED = 'ACCEPTED'
    ASSIGNED = 'ASSIGNED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'

    def to_emergency_status(self):
        # an accepted response means the request has a responder
        if self is ResponseStatus.ACCEPTED:
            return EmergencyStatus.ASSIGNED
        return EmergencyStatus[self.name]


MANUAL_RESPONSE_STATUSES = (
    ResponseStatus.ACCEPTED,
    ResponseStatus.IN_PROGRESS,
    ResponseStatus.COMPLETED,
    ResponseStatus.CANCELLED,
)


class EmergencyGrade(ParsableEnum):
    CRITICAL = 'CRITICAL'
    URGENT = 'URGENT'
    NON_URGENT = 'NON_URGENT'

    @property
    def severity(self):
        return GRADE_SEVERITY[self]


GRADE_SEVERITY = {
    EmergencyGrade.CRITICAL: 4,
    EmergencyGrade.URGENT: 3,
    EmergencyGrade.NON_URGENT: 1,
}

CRITICAL_SEVERITY = GRADE_SEVERITY[EmergencyGrade.CRITICAL]


class NotificationType(ParsableEnum):
    EMERGENCY = 'EMERGENCY'
    ASSIGNMENT = 'ASSIGNMENT'
    STATUS_UPDATE = 'STATUS_UPDATE'
    EMERGENCY_ACCEPTED = 'EMERGENCY_ACCEPTED'
    RESCUE_REQUEST = 'RESCUE_REQUEST'
