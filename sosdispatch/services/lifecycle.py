"""Emergency request lifecycle.

All status transitions of an emergency request live here. The status change,
the response row and the bed decrement of one transition commit together in
one transaction (``atomic``). Guarded transitions re-check the stored status
in the UPDATE itself (``_claim_status``), so two concurrent callers cannot both
pass the same check. Notifications and broadcasts run only after that commit,
inside ``best_effort``, and never fail the transition.

Transitions::

    create                    -> PENDING
    assign_to_hospital        PENDING -> ASSIGNED (bed checked, bed decremented)
    assign_case               PENDING|ASSIGNED|IN_PROGRESS, adds a response, no bed check
    accept_emergency          PENDING -> ASSIGNED (response ACCEPTED)
    start_response            response ACCEPTED -> IN_PROGRESS, request -> IN_PROGRESS
    override_response_status  any -> mirrored status (unguarded escape hatch)
    update_status             any -> any (unguarded escape hatch)
    cancel_case               non-terminal -> CANCELLED
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value

from ..enums import (
    MANUAL_RESPONSE_STATUSES,
    RESPONDER_ROLES,
    EmergencyStatus,
    NotificationType,
    OrganizationStatus,
    OrganizationType,
    ResponseStatus,
    UserRole,
)
from ..errors import NotFoundError, ValidationError
from ..extensions import atomic, db
from ..models import EmergencyRequest, EmergencyResponse, Organization, User
from ..realtime import broadcaster
from ..schemas import MedicalInfo
from .notifications import active_user_ids, best_effort, notification_writer

logger = logging.getLogger(__name__)


# ==================== HELPERS ====================

def _get_emergency(emergency_id, message="Emergency request not found"):
    emergency = db.session.get(EmergencyRequest, emergency_id)
    if not emergency:
        logger.warning(f"Emergency request {emergency_id} not found")
        raise NotFoundError(message)
    return emergency


def _get_response(response_id):
    response = db.session.get(EmergencyResponse, response_id)
    if not response:
        logger.warning(f"Emergency response {response_id} not found")
        raise NotFoundError("Emergency response not found")
    return response


def _lock_organization(organization_id):
    """Load an organization row with a row lock held until commit"""
    return db.session.execute(
        select(Organization)
        .where(Organization.id == organization_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _reserve_bed(hospital_id):
    """Take one bed in a single conditional UPDATE; False when none is left"""
    result = db.session.execute(
        update(Organization)
        .where(Organization.id == hospital_id, Organization.available_beds > 0)
        .values(available_beds=Organization.available_beds - 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _claim_status(emergency, allowed, status):
    """Move the request to ``status`` only while its stored status is still one of ``allowed``.

    Returns False, with ``emergency`` reloaded, when another transaction got
    there first.
    """
    result = db.session.execute(
        update(EmergencyRequest)
        .where(EmergencyRequest.id == emergency.id, EmergencyRequest.status.in_([s.value for s in allowed]))
        .values(status=status.value, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.refresh(emergency)
        return False
    set_committed_value(emergency, 'status', status.value)
    return True


def _already_responding(emergency, organization_id):
    return any(r.organization_id == organization_id for r in emergency.responses)


def _add_response(emergency, organization_id, status, notes=None):
    response = EmergencyResponse(
        emergency_request_id=emergency.id,
        organization_id=organization_id,
        status=status.value,
        dispatch_time=datetime.utcnow(),
        notes=notes,
    )
    db.session.add(response)
    try:
        db.session.flush()
    except IntegrityError:
        # a concurrent transaction linked the same pair first
        raise ValidationError("This case has already been assigned to this organization") from None
    return response


def _responder_user_ids(emergency):
    user_ids = []
    for response in emergency.responses:
        user_ids.extend(active_user_ids(organization_id=response.organization_id))
    return user_ids


# ==================== CREATE ====================

def create_emergency_request(data, user):
    """Create a PENDING request and alert every active responder"""
    patient_id = data.patient_id or user.id
    if patient_id != user.id and user.role == UserRole.PATIENT:
        raise ValidationError("Patients can only create emergency requests for themselves")
    patient = db.session.get(User, patient_id)
    if not patient:
        raise NotFoundError("Patient not found")

    medical_info = data.medical_info or MedicalInfo()
    medical_info = medical_info.model_copy(update={
        'grade': data.grade,
        'severity': data.grade.severity,
        'emergency_type': data.type,
    })

    with atomic():
        emergency = EmergencyRequest(
            status=EmergencyStatus.PENDING.value,
            type=data.type,
            location=data.location,
            latitude=data.latitude,
            longitude=data.longitude,
            medical_info=medical_info.dump(),
            patient_id=patient.id,
            updated_by=user.id,
        )
        emergency.description = data.description
        db.session.add(emergency)

    with best_effort("announce new emergency"):
        logger.info(f"Emergency request {emergency.id} created ({data.type}, {data.grade})")
        notification_writer.notify_many(
            active_user_ids(roles=RESPONDER_ROLES),
            NotificationType.EMERGENCY,
            "New Emergency Request",
            f"Emergency {data.type} - {data.grade} grade",
            metadata={
                'emergencyId': emergency.id,
                'grade': data.grade.value,
                'type': data.type,
                'location': emergency.location,
                'patientName': patient.full_name,
            },
        )
        broadcaster.broadcast_emergency({
            'id': emergency.id,
            'type': data.type,
            'grade': data.grade.value,
            'location': emergency.location,
            'coordinates': {'latitude': emergency.latitude, 'longitude': emergency.longitude},
        })
    return emergency


# ==================== ASSIGNMENT ====================

def assign_to_hospital(emergency_id, hospital_id, user_id=None):
    """Assign a PENDING request to a hospital, taking one of its beds"""
    logger.info(f"Assigning emergency {emergency_id} to hospital {hospital_id}")
    with atomic():
        emergency = _get_emergency(emergency_id)
        if _already_responding(emergency, hospital_id):
            raise ValidationError("This case has already been assigned to this hospital")

        current = EmergencyStatus.parse(emergency.status)
        if current is EmergencyStatus.PENDING:
            hospital = _lock_organization(hospital_id)
            if not hospital or hospital.type != OrganizationType.HOSPITAL:
                raise NotFoundError("Hospital not found")
            if not _claim_status(emergency, (EmergencyStatus.PENDING,), EmergencyStatus.ASSIGNED):
                current = EmergencyStatus.parse(emergency.status)
        if current is not EmergencyStatus.PENDING:
            logger.warning(f"Emergency {emergency_id} cannot be assigned from {current}")
            raise ValidationError(
                f"Only PENDING cases can be assigned to a hospital. Current status: {current}",
                current_status=current,
            )

        if hospital.available_beds is None or hospital.available_beds <= 0 or not _reserve_bed(hospital.id):
            raise ValidationError("No available beds in the selected hospital")

        _add_response(emergency, hospital.id, ResponseStatus.ASSIGNED)
        emergency.updated_by = user_id

    with best_effort(f"announce assignment of emergency {emergency_id}"):
        db.session.refresh(hospital)
        logger.info(f"Emergency {emergency_id} assigned to {hospital.name}, {hospital.available_beds} beds left")
        notification_writer.notify_many(
            active_user_ids(roles=[UserRole.HOSPITAL], organization_id=hospital.id),
            NotificationType.ASSIGNMENT,
            "New Emergency Assignment",
            f"You have been assigned to emergency case {emergency.id} ({emergency.type})",
            metadata={
                'emergencyId': emergency.id,
                'status': EmergencyStatus.ASSIGNED.value,
                'patientName': emergency.patient.full_name,
            },
        )
        notification_writer.notify(
            NotificationType.STATUS_UPDATE,
            "Emergency Status Update",
            f"Your emergency request has been assigned to {hospital.name}",
            emergency.patient_id,
            metadata={
                'emergencyId': emergency.id,
                'status': EmergencyStatus.ASSIGNED.value,
                'hospitalName': hospital.name,
            },
        )
        broadcaster.broadcast_hospital_update(hospital.id, hospital.available_beds)
        broadcaster.broadcast_status_update(emergency.id, EmergencyStatus.ASSIGNED)
    return emergency


def assign_case(case_id, organization_id, notes=None):
    """Dashboard assignment to any hospital or rescue team; beds are left untouched"""
    logger.info(f"Assigning case {case_id} to organization {organization_id}")
    with atomic():
        emergency = _get_emergency(case_id, "Emergency case not found")
        current = EmergencyStatus.parse(emergency.status)
        if current.is_terminal:
            logger.warning(f"Emergency case {case_id} is not in a valid status for assignment (current: {current})")
            raise ValidationError(
                "Emergency case can only be assigned if it is in PENDING, ASSIGNED, or IN_PROGRESS status. "
                f"Current status: {current}",
                current_status=current,
            )

        organization = db.session.get(Organization, organization_id)
        if not organization:
            logger.warning(f"Organization {organization_id} not found")
            raise NotFoundError("Organization not found")
        if organization.type not in (OrganizationType.HOSPITAL, OrganizationType.RESCUE_TEAM):
            raise ValidationError("Only RESCUE_TEAM or HOSPITAL can be assigned to a case")
        if _already_responding(emergency, organization.id):
            raise ValidationError("This case has already been assigned to this organization")

        _add_response(emergency, organization.id, ResponseStatus.ASSIGNED, notes)
        if current is EmergencyStatus.PENDING:
            emergency.status = EmergencyStatus.ASSIGNED.value

    with best_effort(f"announce assignment of case {case_id}"):
        logger.info(f"Case {case_id} assigned to {organization.name}")
        notification_writer.notify_many(
            active_user_ids(organization_id=organization.id),
            NotificationType.ASSIGNMENT,
            "New Emergency Assignment",
            f"You have been assigned to emergency case {emergency.id} ({emergency.type})",
            metadata={'emergencyId': emergency.id, 'status': emergency.status, 'location': emergency.location},
        )
        broadcaster.broadcast_status_update(emergency.id, emergency.status, organizationId=organization.id)
        broadcaster.broadcast_stats_updated(reason='case-assigned')
    return emergency


def accept_emergency(hospital_id, emergency_id, notes=None):
    """Hospital takes a PENDING request on itself"""
    logger.info(f"Accepting emergency {emergency_id} for hospital {hospital_id}")
    with atomic():
        hospital = db.session.get(Organization, hospital_id)
        if not hospital or hospital.type != OrganizationType.HOSPITAL:
            raise NotFoundError("Hospital not found")
        emergency = _get_emergency(emergency_id)
        current = EmergencyStatus.parse(emergency.status)
        if current is EmergencyStatus.PENDING and _already_responding(emergency, hospital.id):
            raise ValidationError("This case has already been assigned to this hospital")
        if current is EmergencyStatus.PENDING and not _claim_status(
            emergency, (EmergencyStatus.PENDING,), EmergencyStatus.ASSIGNED
        ):
            current = EmergencyStatus.parse(emergency.status)
        if current is not EmergencyStatus.PENDING:
            logger.warning(f"Emergency request {emergency_id} is not in PENDING state, current state: {current}")
            raise ValidationError("Emergency request is no longer pending", current_status=current)

        response = _add_response(emergency, hospital.id, ResponseStatus.ACCEPTED, notes)

    with best_effort(f"announce acceptance of emergency {emergency_id}"):
        notification_writer.notify(
            NotificationType.EMERGENCY_ACCEPTED,
            "Hospital Accepted Your Emergency",
            f"{hospital.name} has accepted your emergency request",
            emergency.patient_id,
            metadata={'emergencyId': emergency.id, 'hospitalId': hospital.id, 'hospitalName': hospital.name},
        )
        broadcaster.broadcast_status_update(emergency.id, EmergencyStatus.ASSIGNED, organizationId=hospital.id)
    return response


# ==================== RESPONSE STATUS ====================

def start_response(response_id):
    """Move an ACCEPTED response to IN_PROGRESS and the request along with it"""
    with atomic():
        response = _get_response(response_id)
        if response.status != ResponseStatus.ACCEPTED:
            logger.warning(
                f"Emergency response {response_id} is not in ACCEPTED state, current state: {response.status}"
            )
            raise ValidationError(
                "Emergency response must be in ACCEPTED state to update to IN_PROGRESS",
                current_status=response.status,
            )
        response.status = ResponseStatus.IN_PROGRESS.value
        response.emergency_request.status = EmergencyStatus.IN_PROGRESS.value

    with best_effort(f"announce progress of response {response_id}"):
        logger.info(f"Emergency response {response_id} is now IN_PROGRESS")
        broadcaster.broadcast_status_update(response.emergency_request_id, EmergencyStatus.IN_PROGRESS)
    return response


def override_response_status(response_id, status):
    """Force a response status and mirror it onto the request without transition checks"""
    status = ResponseStatus.parse(status)
    if status not in MANUAL_RESPONSE_STATUSES:
        valid = ', '.join(s.value for s in MANUAL_RESPONSE_STATUSES)
        raise ValidationError(f"Invalid status. Valid statuses are: {valid}")

    with atomic():
        response = _get_response(response_id)
        emergency = response.emergency_request
        mirrored = status.to_emergency_status()
        previous = EmergencyStatus.parse(emergency.status)
        if previous.is_terminal and previous is not mirrored:
            logger.warning(f"Manual override moves emergency {emergency.id} out of terminal status {previous}")

        response.status = status.value
        if status is ResponseStatus.COMPLETED and response.completion_time is None:
            response.completion_time = datetime.utcnow()
        emergency.status = mirrored.value

    with best_effort(f"announce override of response {response_id}"):
        logger.info(f"Emergency response {response_id} set to {status}, request {emergency.id} now {mirrored}")
        broadcaster.broadcast_status_update(emergency.id, mirrored, responseId=response.id)
        if mirrored.is_terminal:
            broadcaster.broadcast_stats_updated(reason='case-closed')
    return response


def update_status(emergency_id, status, notes=None):
    """Set a request's status directly and tell the patient and every responder"""
    status = EmergencyStatus.parse(status)
    with atomic():
        emergency = _get_emergency(emergency_id)
        previous = emergency.status
        emergency.status = status.value

    logger.info(f"Emergency {emergency_id} status {previous} -> {status}")
    with best_effort(f"announce status of emergency {emergency_id}"):
        metadata = {'emergencyId': emergency.id, 'status': status.value, 'notes': notes}
        notification_writer.notify(
            NotificationType.STATUS_UPDATE,
            "Emergency Status Update",
            f"Your emergency request status has been updated to {status}",
            emergency.patient_id,
            metadata=metadata,
        )
        notification_writer.notify_many(
            _responder_user_ids(emergency),
            NotificationType.STATUS_UPDATE,
            "Emergency Status Update",
            f"Emergency request {emergency.id} status updated to {status}",
            metadata=metadata,
        )
        broadcaster.broadcast_status_update(emergency.id, status)
    return emergency


def cancel_case(case_id, reason=None):
    logger.info(f"Cancelling case {case_id}")
    with atomic():
        emergency = _get_emergency(case_id, "Emergency case not found")
        current = EmergencyStatus.parse(emergency.status)
        open_statuses = [s for s in EmergencyStatus if not s.is_terminal]
        while not current.is_terminal:
            if _claim_status(emergency, open_statuses, EmergencyStatus.CANCELLED):
                break
            current = EmergencyStatus.parse(emergency.status)
        if current is EmergencyStatus.COMPLETED:
            logger.warning(f"Emergency case {case_id} is already completed and cannot be cancelled")
            raise ValidationError("Completed emergency case cannot be cancelled", current_status=current)
        if current is EmergencyStatus.CANCELLED:
            logger.warning(f"Emergency case {case_id} is already cancelled")
            raise ValidationError("Emergency case is already cancelled", current_status=current)

    with best_effort(f"announce cancellation of case {case_id}"):
        logger.info(f"Case {case_id} cancelled")
        notification_writer.notify(
            NotificationType.STATUS_UPDATE,
            "Emergency Cancelled",
            "Your emergency request has been cancelled",
            emergency.patient_id,
            metadata={'emergencyId': emergency.id, 'status': EmergencyStatus.CANCELLED.value, 'reason': reason},
        )
        broadcaster.broadcast_status_update(emergency.id, EmergencyStatus.CANCELLED)
        broadcaster.broadcast_stats_updated(reason='case-cancelled')
    return emergency


# ==================== RESCUE HAND-OFF ====================

def notify_rescue_teams(response_id):
    """Hospital asks every active rescue team for assistance on a case"""
    response = _get_response(response_id)
    emergency = response.emergency_request
    teams = Organization.query.filter_by(
        type=OrganizationType.RESCUE_TEAM.value, status=OrganizationStatus.ACTIVE.value
    ).all()
    if not teams:
        logger.error("No active RESCUE_TEAM found")
        raise NotFoundError("No active rescue teams found")

    user_ids = []
    for team in teams:
        user_ids.extend(active_user_ids(organization_id=team.id))
    notification_writer.notify_many(
        user_ids,
        NotificationType.RESCUE_REQUEST,
        "Emergency Assistance Requested",
        f"Hospital {response.organization.name} requests assistance for emergency at location: {emergency.location}",
        metadata={
            'emergencyId': emergency.id,
            'hospitalId': response.organization_id,
            'hospitalName': response.organization.name,
            'location': emergency.location,
            'latitude': emergency.latitude,
            'longitude': emergency.longitude,
        },
    )
    logger.info(f"Notified {len(user_ids)} rescue team users for emergency response {response_id}")
    return {'message': "Rescue teams notified successfully", 'notified': len(user_ids)}


# ==================== READS ====================

def get_response(response_id):
    return _get_response(response_id)


def list_for_patient(user_id):
    return (
        EmergencyRequest.query.filter_by(patient_id=user_id)
        .order_by(EmergencyRequest.created_at.desc())
        .all()
    )


def list_all():
    return EmergencyRequest.query.order_by(EmergencyRequest.created_at.desc()).all()


def get_for_user(emergency_id, user):
    emergency = db.session.get(EmergencyRequest, emergency_id)
    # patients only see their own requests
    if not emergency or (user.role == UserRole.PATIENT and emergency.patient_id != user.id):
        raise NotFoundError("Emergency request not found")
    return emergency


def _requests_with_responses(organization_id, statuses=None):
    query = EmergencyRequest.query.join(EmergencyResponse).filter(
        EmergencyResponse.organization_id == organization_id
    )
    if statuses:
        query = query.filter(EmergencyResponse.status.in_([s.value for s in statuses]))
    return query.order_by(EmergencyRequest.created_at.desc()).all()


def active_for_hospital(hospital_id):
    return _requests_with_responses(
        hospital_id, (ResponseStatus.ACCEPTED, ResponseStatus.ASSIGNED, ResponseStatus.IN_PROGRESS)
    )


def cases_for_rescue_team(rescue_team_id):
    return _requests_with_responses(rescue_team_id)


def active_rescue_teams_for_hospital(hospital_id):
    """Rescue teams working on the hospital's open cases, with the linked cases"""
    teams = {}
    for emergency in active_for_hospital(hospital_id):
        for response in emergency.responses:
            organization = response.organization
            if organization.type != OrganizationType.RESCUE_TEAM:
                continue
            team = teams.setdefault(organization.id, {
                'id': organization.id,
                'name': organization.name,
                'status': response.status,
                'address': organization.address,
                'city': organization.city,
                'vehicleTypes': organization.vehicle_types or [],
                'linkedCases': [],
            })
            team['linkedCases'].append({
                'emergencyId': emergency.id,
                'responseId': response.id,
                'status': response.status,
            })
    for team in teams.values():
        team['linkedCasesCount'] = len(team['linkedCases'])
    logger.info(f"Found {len(teams)} active rescue teams for hospital {hospital_id}")
    return list(teams.values())
