"""Exception hierarchy for ditaflow."""

from __future__ import annotations


class DitaFlowError(RuntimeError):
    """Base class for errors raised by ditaflow."""


class ConfigurationError(DitaFlowError):
    """Raised before any process starts when paths or executables are invalid."""


class ClasspathError(ConfigurationError):
    """Raised when the DITA-OT plugin registry cannot produce a classpath."""


class ConfigError(DitaFlowError):
    """Raised when the configuration file cannot be parsed."""


__all__ = ["ClasspathError", "ConfigError", "ConfigurationError", "DitaFlowError"]
