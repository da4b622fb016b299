# ==================== DATABASE MODELS ====================

import uuid
from datetime import datetime

from .crypto import phi_encryption
from .enums import (
    EmergencyGrade,
    EmergencyStatus,
    OrganizationStatus,
    UserRole,
    UserStatus,
)
from .extensions import db


def _uuid():
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    """User model with role-based access control"""
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255))
    first_name = db.Column(db.String(100), nullable=False, default='')
    last_name = db.Column(db.String(100), nullable=False, default='')
    phone = db.Column(db.String(30))
    role = db.Column(db.String(30), nullable=False, default=UserRole.PATIENT.value)
    status = db.Column(db.String(20), nullable=False, default=UserStatus.ACTIVE.value)
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = db.relationship('Organization', back_populates='users')
    notifications = db.relationship('Notification', back_populates='user')
    settings = db.relationship('UserSettings', back_populates='user', uselist=False)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self):
        return self.status == UserStatus.ACTIVE

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'phone': self.phone,
            'role': self.role,
            'status': self.status,
            'organizationId': self.organization_id,
            'createdAt': _iso(self.created_at),
        }


class Organization(db.Model):
    """Hospital or rescue team"""
    __tablename__ = 'organizations'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=OrganizationStatus.ACTIVE.value, index=True)
    address = db.Column(db.String(255))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))
    contact_phone = db.Column(db.String(30))
    contact_email = db.Column(db.String(120))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    available_beds = db.Column(db.Integer)  # hospitals only
    medical_info = db.Column(db.JSON, default=dict)  # capacity / staff / ambulances
    vehicle_types = db.Column(db.JSON, default=list)  # rescue teams only
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = db.relationship('User', back_populates='organization')
    responses = db.relationship('EmergencyResponse', back_populates='organization')

    def to_dict(self, include_users=False):
        data = {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'status': self.status,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'postalCode': self.postal_code,
            'contactPhone': self.contact_phone,
            'contactEmail': self.contact_email,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'availableBeds': self.available_beds,
            'medicalInfo': self.medical_info or {},
            'vehicleTypes': self.vehicle_types or [],
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_users:
            data['users'] = [
                {'id': u.id, 'firstName': u.first_name, 'lastName': u.last_name, 'role': u.role}
                for u in self.users
            ]
        return data


class EmergencyRequest(db.Model):
    """SOS request submitted by a patient"""
    __tablename__ = 'emergency_requests'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    status = db.Column(db.String(20), nullable=False, default=EmergencyStatus.PENDING.value, index=True)
    type = db.Column(db.String(50), nullable=False)

    # Free-text description (encrypted)
    _description = db.Column('description', db.Text)

    location = db.Column(db.String(255))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)
    medical_info = db.Column(db.JSON, default=dict)  # grade / severity / symptoms
    patient_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    updated_by = db.Column(db.String(36))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = db.relationship('User')
    responses = db.relationship(
        'EmergencyResponse',
        back_populates='emergency_request',
        order_by='EmergencyResponse.created_at',
    )

    @property
    def description(self):
        return phi_encryption.decrypt_phi(self._description)

    @description.setter
    def description(self, value):
        self._description = phi_encryption.encrypt_phi(value)

    def medical_info_or_default(self):
        if self.medical_info:
            return self.medical_info
        grade = EmergencyGrade.NON_URGENT
        return {'grade': grade.value, 'severity': grade.severity}

    def to_dict(self, include_responses=True):
        data = {
            'id': self.id,
            'status': self.status,
            'type': self.type,
            'emergencyType': self.type,
            'description': self.description,
            'location': self.location,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'medicalInfo': self.medical_info_or_default(),
            'patientId': self.patient_id,
            'patient': {
                'id': self.patient.id,
                'firstName': self.patient.first_name,
                'lastName': self.patient.last_name,
                'phone': self.patient.phone,
            } if self.patient else None,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }
        if include_responses:
            data['responses'] = [r.to_dict(include_organization=True) for r in self.responses]
        return data


class EmergencyResponse(db.Model):
    """One organization's engagement with one emergency request"""
    __tablename__ = 'emergency_responses'
    __table_args__ = (
        db.UniqueConstraint('emergency_request_id', 'organization_id', name='uq_response_request_organization'),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    emergency_request_id = db.Column(
        db.String(36), db.ForeignKey('emergency_requests.id'), nullable=False, index=True
    )
    organization_id = db.Column(db.String(36), db.ForeignKey('organizations.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, index=True)
    dispatch_time = db.Column(db.DateTime)
    completion_time = db.Column(db.DateTime)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    emergency_request = db.relationship('EmergencyRequest', back_populates='responses')
    organization = db.relationship('Organization', back_populates='responses')

    def to_dict(self, include_organization=False, include_request=False):
        data = {
            'id': self.id,
            'emergencyRequestId': self.emergency_request_id,
            'organizationId': self.organization_id,
            'status': self.status,
            'dispatchTime': _iso(self.dispatch_time),
            'completionTime': _iso(self.completion_time),
            'notes': self.notes,
            'createdAt': _iso(self.created_at),
        }
        if include_organization and self.organization:
            data['organization'] = {
                'id': self.organization.id,
                'name': self.organization.name,
                'type': self.organization.type,
            }
        if include_request:
            data['emergencyRequest'] = self.emergency_request.to_dict(include_responses=False)
        return data


class Notification(db.Model):
    """Per-user notification row"""
    __tablename__ = 'notifications'

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    type = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    meta = db.Column('metadata', db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    # Relationship
    user = db.relationship('User', back_populates='notifications')

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'title': self.title,
            'body': self.body,
            'userId': self.user_id,
            'isRead': self.is_read,
            'metadata': self.meta or {},
            'createdAt': _iso(self.created_at),
        }


class UserSettings(db.Model):
    """Per-user preferences, one JSON document per category"""
    __tablename__ = 'user_settings'

    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), primary_key=True)
    notification_settings = db.Column(db.JSON, default=dict)
    system_settings = db.Column(db.JSON, default=dict)
    communication_settings = db.Column(db.JSON, default=dict)
    profile_settings = db.Column(db.JSON, default=dict)
    emergency_settings = db.Column(db.JSON, default=dict)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', back_populates='settings')

    def to_dict(self):
        return {
            'userId': self.user_id,
            'notificationSettings': self.notification_settings or {},
            'systemSettings': self.system_settings or {},
            'communicationSettings': self.communication_settings or {},
            'profileSettings': self.profile_settings or {},
            'emergencySettings': self.emergency_settings or {},
            'updatedAt': _iso(self.updated_at),
        }
