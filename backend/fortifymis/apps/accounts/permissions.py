"""
Static role -> permission mapping.

Role inheritance:
- MILL_TECHNICIAN extends MILL_OPERATOR, MILL_MANAGER extends MILL_TECHNICIAN.
- FWGA_PROGRAM_MANAGER extends FWGA_INSPECTOR.
- INSTITUTIONAL_BUYER and DRIVER_LOGISTICS have independent sets.
- SYSTEM_ADMIN holds every permission.
"""

from __future__ import annotations

import enum
from typing import Dict, FrozenSet, Iterable, Union

from .models import UserRole


class Permission(str, enum.Enum):
    # Compliance
    AUDIT_VIEW = "AUDIT_VIEW"
    AUDIT_CREATE = "AUDIT_CREATE"
    AUDIT_EDIT = "AUDIT_EDIT"
    AUDIT_SUBMIT = "AUDIT_SUBMIT"
    AUDIT_APPROVE = "AUDIT_APPROVE"
    TEMPLATE_MANAGE = "TEMPLATE_MANAGE"

    # Equipment & maintenance
    EQUIPMENT_VIEW = "EQUIPMENT_VIEW"
    EQUIPMENT_EDIT = "EQUIPMENT_EDIT"
    MAINTENANCE_VIEW = "MAINTENANCE_VIEW"
    MAINTENANCE_CREATE = "MAINTENANCE_CREATE"
    MAINTENANCE_COMPLETE = "MAINTENANCE_COMPLETE"

    # IoT
    SENSOR_VIEW = "SENSOR_VIEW"
    SENSOR_MANAGE = "SENSOR_MANAGE"
    SENSOR_DATA_VIEW = "SENSOR_DATA_VIEW"
    SENSOR_DATA_INGEST = "SENSOR_DATA_INGEST"
    SENSOR_ALERT_VIEW = "SENSOR_ALERT_VIEW"
    PREDICTIVE_MAINTENANCE_VIEW = "PREDICTIVE_MAINTENANCE_VIEW"

    # Training
    TRAINING_VIEW = "TRAINING_VIEW"
    TRAINING_ENROLL = "TRAINING_ENROLL"
    TRAINING_MANAGE = "TRAINING_MANAGE"

    # Alerts
    ALERT_VIEW = "ALERT_VIEW"
    ALERT_CREATE = "ALERT_CREATE"
    ALERT_ACKNOWLEDGE = "ALERT_ACKNOWLEDGE"
    ALERT_RESOLVE = "ALERT_RESOLVE"
    ALERT_DELETE = "ALERT_DELETE"

    # Procurement
    RFP_VIEW = "RFP_VIEW"
    RFP_CREATE = "RFP_CREATE"
    RFP_EDIT = "RFP_EDIT"
    RFP_PUBLISH = "RFP_PUBLISH"
    BID_CREATE = "BID_CREATE"
    BID_VIEW = "BID_VIEW"
    BID_WITHDRAW = "BID_WITHDRAW"
    BID_EVALUATE = "BID_EVALUATE"
    BID_AWARD = "BID_AWARD"
    ORDER_VIEW = "ORDER_VIEW"
    ORDER_CREATE = "ORDER_CREATE"

    # Logistics
    TRIP_VIEW = "TRIP_VIEW"
    TRIP_CREATE = "TRIP_CREATE"
    TRIP_MANAGE = "TRIP_MANAGE"
    TRIP_START = "TRIP_START"
    TRIP_COMPLETE = "TRIP_COMPLETE"
    TRACKING_VIEW = "TRACKING_VIEW"
    TRACKING_UPDATE = "TRACKING_UPDATE"

    # Analytics
    ANALYTICS_MILL = "ANALYTICS_MILL"
    ANALYTICS_REGIONAL = "ANALYTICS_REGIONAL"
    ANALYTICS_NATIONAL = "ANALYTICS_NATIONAL"

    # Administration
    USER_VIEW = "USER_VIEW"
    USER_CREATE = "USER_CREATE"
    USER_EDIT = "USER_EDIT"
    MILL_MANAGE = "MILL_MANAGE"
    AUDIT_LOG_VIEW = "AUDIT_LOG_VIEW"


P = Permission

_MILL_OPERATOR = frozenset(
    {
        P.EQUIPMENT_VIEW,
        P.MAINTENANCE_VIEW,
        P.MAINTENANCE_CREATE,
        P.SENSOR_VIEW,
        P.SENSOR_DATA_INGEST,
        P.TRAINING_VIEW,
        P.TRAINING_ENROLL,
        P.ALERT_VIEW,
        P.ALERT_ACKNOWLEDGE,
        P.ANALYTICS_MILL,
    }
)

_MILL_TECHNICIAN = _MILL_OPERATOR | {
    P.EQUIPMENT_EDIT,
    P.MAINTENANCE_COMPLETE,
    P.SENSOR_DATA_VIEW,
    P.SENSOR_ALERT_VIEW,
    P.ALERT_RESOLVE,
}

_MILL_MANAGER = _MILL_TECHNICIAN | {
    P.AUDIT_VIEW,
    P.AUDIT_CREATE,
    P.AUDIT_EDIT,
    P.AUDIT_SUBMIT,
    P.TRAINING_MANAGE,
    P.RFP_VIEW,
    P.BID_CREATE,
    P.BID_VIEW,
    P.BID_WITHDRAW,
    P.ORDER_VIEW,
    P.TRIP_VIEW,
    P.TRIP_CREATE,
    P.TRIP_MANAGE,
    P.TRACKING_VIEW,
    P.SENSOR_MANAGE,
    P.PREDICTIVE_MAINTENANCE_VIEW,
    P.USER_VIEW,
    P.USER_CREATE,
    P.USER_EDIT,
}

_FWGA_INSPECTOR = frozenset(
    {
        P.AUDIT_VIEW,
        P.AUDIT_CREATE,
        P.AUDIT_EDIT,
        P.AUDIT_SUBMIT,
        P.AUDIT_APPROVE,
        P.EQUIPMENT_VIEW,
        P.MAINTENANCE_VIEW,
        P.TRAINING_VIEW,
        P.TRAINING_MANAGE,
        P.ALERT_VIEW,
        P.ALERT_CREATE,
        P.ALERT_ACKNOWLEDGE,
        P.ALERT_RESOLVE,
        P.ANALYTICS_MILL,
        P.ANALYTICS_REGIONAL,
    }
)

_FWGA_PROGRAM_MANAGER = _FWGA_INSPECTOR | {
    P.TEMPLATE_MANAGE,
    P.RFP_VIEW,
    P.BID_VIEW,
    P.BID_EVALUATE,
    P.BID_AWARD,
    P.ORDER_VIEW,
    P.SENSOR_VIEW,
    P.SENSOR_DATA_VIEW,
    P.SENSOR_ALERT_VIEW,
    P.PREDICTIVE_MAINTENANCE_VIEW,
    P.ANALYTICS_NATIONAL,
    P.USER_VIEW,
    P.USER_CREATE,
    P.USER_EDIT,
    P.MILL_MANAGE,
    P.AUDIT_LOG_VIEW,
}

_INSTITUTIONAL_BUYER = frozenset(
    {
        P.RFP_VIEW,
        P.RFP_CREATE,
        P.RFP_EDIT,
        P.RFP_PUBLISH,
        P.BID_VIEW,
        P.BID_EVALUATE,
        P.BID_AWARD,
        P.ORDER_VIEW,
        P.ORDER_CREATE,
        P.TRACKING_VIEW,
        P.TRIP_VIEW,
        P.ALERT_VIEW,
        P.ALERT_ACKNOWLEDGE,
        P.ANALYTICS_MILL,
        P.ANALYTICS_REGIONAL,
    }
)

_DRIVER_LOGISTICS = frozenset(
    {
        P.TRIP_VIEW,
        P.TRIP_START,
        P.TRIP_COMPLETE,
        P.TRACKING_VIEW,
        P.TRACKING_UPDATE,
        P.ORDER_VIEW,
        P.ALERT_VIEW,
        P.ALERT_ACKNOWLEDGE,
    }
)

ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.MILL_OPERATOR: frozenset(_MILL_OPERATOR),
    UserRole.MILL_TECHNICIAN: frozenset(_MILL_TECHNICIAN),
    UserRole.MILL_MANAGER: frozenset(_MILL_MANAGER),
    UserRole.FWGA_INSPECTOR: frozenset(_FWGA_INSPECTOR),
    UserRole.FWGA_PROGRAM_MANAGER: frozenset(_FWGA_PROGRAM_MANAGER),
    UserRole.INSTITUTIONAL_BUYER: _INSTITUTIONAL_BUYER,
    UserRole.DRIVER_LOGISTICS: _DRIVER_LOGISTICS,
    UserRole.SYSTEM_ADMIN: frozenset(Permission),
}


def _as_role(role: Union[UserRole, str]) -> UserRole:
    return role if isinstance(role, UserRole) else UserRole(role)


def permissions_for(role: Union[UserRole, str]) -> FrozenSet[Permission]:
    return ROLE_PERMISSIONS.get(_as_role(role), frozenset())


def has_permission(role: Union[UserRole, str], permission: Permission) -> bool:
    return permission in permissions_for(role)


def has_any_permission(role: Union[UserRole, str], permissions: Iterable[Permission]) -> bool:
    granted = permissions_for(role)
    return any(p in granted for p in permissions)
