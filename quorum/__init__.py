"""Quorum: community annotation consensus and merge resolution."""

__version__ = "0.1.0"

from .engine import AnnotationEngine
from .errors import AuthorizationError, QuorumError, ValidationError
from .identity import IdentityContext, StaticIdentity
from .schemas import BucketKey, ConsensusSettings, ConsensusStatus, EngineConfig, VoteDirection

__all__ = [
    "AnnotationEngine",
    "AuthorizationError",
    "BucketKey",
    "ConsensusSettings",
    "ConsensusStatus",
    "EngineConfig",
    "IdentityContext",
    "QuorumError",
    "StaticIdentity",
    "ValidationError",
    "VoteDirection",
]
