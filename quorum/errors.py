"""Exception hierarchy for the annotation engine.

Every error is raised synchronously and leaves engine state untouched.
"""

from __future__ import annotations


class QuorumError(Exception):
    """Base exception for all engine errors."""


class ValidationError(QuorumError, ValueError):
    """Raised for malformed input: blank labels, oversize text, self-merges,
    unknown buckets or suggestion ids."""


class AuthorizationError(QuorumError, PermissionError):
    """Raised when the caller lacks the role an operation requires."""
