from .models import (
    db,
    Operator,
    Ambulance,
    Hospital,
    HospitalUpdate,
    HospitalCapacity,
    EmergencyToken,
    ACTIVE_TOKEN_STATUSES,
    TERMINAL_TOKEN_STATUSES,
    TOKEN_STATUSES,
)
from .records import RouteLeg, CapacityCounters

__all__ = [
    'db',
    'Operator',
    'Ambulance',
    'Hospital',
    'HospitalUpdate',
    'HospitalCapacity',
    'EmergencyToken',
    'ACTIVE_TOKEN_STATUSES',
    'TERMINAL_TOKEN_STATUSES',
    'TOKEN_STATUSES',
    'RouteLeg',
    'CapacityCounters',
]
