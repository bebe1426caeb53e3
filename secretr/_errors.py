"""Exception hierarchy for the secretr client.

Callers can catch :class:`SecretrError` to handle every failure raised by the
package, or the narrower types to tell fatal configuration problems apart from
failures that only affect a single secret.

Exceptions
----------
SecretrError
ConfigurationError
BatchConfigError
RetrievalError
FilterError
OutputWriteError
"""

from __future__ import annotations


class SecretrError(Exception):
    """Base error for secretr operations."""


class ConfigurationError(SecretrError):
    """Raised when connection inputs or CLI options cannot be resolved.

    Resolution failures are fatal: they abort the run before any request
    reaches Secret Server.
    """


class BatchConfigError(ConfigurationError):
    """Raised when a batch configuration file is unreadable or malformed."""


class RetrievalError(SecretrError):
    """Raised when a single secret cannot be retrieved from Secret Server."""


class FilterError(SecretrError):
    """Raised when a JMESPath filter expression is invalid."""


class OutputWriteError(SecretrError):
    """Raised when a secret cannot be written to its output file."""
