"""Custom exception hierarchy for NodePulse."""

from __future__ import annotations


class NodePulseError(Exception):
    """Base exception for all NodePulse errors.

    All custom exceptions in NodePulse inherit from this class, making it
    easy to catch any NodePulse-specific error with a single except clause.
    """


class ConfigError(NodePulseError):
    """Raised when configuration is invalid or missing.

    Examples:
        - ``PORT`` is not an integer or is out of range.
        - ``NODEPULSE_NODES`` is empty or lists a node twice.
        - A store is created with a non-positive capacity.
    """


class ProtocolError(NodePulseError):
    """Raised when a wire payload cannot be decoded into a sample.

    Never escapes ``decode_envelope``: malformed envelopes are turned into
    an ``UnrecognizedEnvelope`` and dropped by the normalizer.
    """
