"""Decision log for docrules."""

from .integrity import IntegrityVerifier
from .log_schema import DecisionEntry
from .recorder import DecisionRecorder

__all__ = [
    'IntegrityVerifier',
    'DecisionEntry',
    'DecisionRecorder',
]
