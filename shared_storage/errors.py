"""
Exceptions raised while defining shared storage constructs.

All of these are raised synchronously at synthesis time, before any
resource or user data command has been added for the failing call.
"""


class SharedStorageError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(SharedStorageError, ValueError):
    """A construct was given settings it cannot act on."""


class UnsupportedPlatformError(ConfigurationError):
    """The mount target is not running an operating system we can script."""


class UnsupportedDistributionError(ConfigurationError):
    """No client installation commands exist for the requested distribution."""
