"""Doctor orchestration on top of the verifier."""

from doctor.orchestrator import DoctorSummary, doctor_profile

__all__ = ["DoctorSummary", "doctor_profile"]
