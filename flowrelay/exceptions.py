"""Exception types raised by flowrelay."""

from __future__ import annotations


class FlowRelayError(Exception):
    """Base class for flowrelay errors."""


class TemplateError(FlowRelayError):
    """A template could not be rendered."""


class ConfigurationError(FlowRelayError, ValueError):
    """Unsupported or invalid configuration."""


class TransportNotConnectedError(FlowRelayError, RuntimeError):
    """A transport was used before ``connect()``."""
