"""Security verification engine."""

from verifier.diagnosis import DiagnosisBranch, RuntimeDiagnosis, classify
from verifier.engine import VerifySummary, verify_profile

__all__ = ["DiagnosisBranch", "RuntimeDiagnosis", "VerifySummary", "classify", "verify_profile"]
