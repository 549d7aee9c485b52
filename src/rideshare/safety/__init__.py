from .safety_service import (
    SAFETY_TIPS,
    CheckInStatus,
    DriverVerification,
    EmergencyContact,
    SafetyService,
)

__all__ = [
    "SAFETY_TIPS",
    "CheckInStatus",
    "DriverVerification",
    "EmergencyContact",
    "SafetyService",
]
