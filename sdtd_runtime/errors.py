"""
Custom exception classes for the 7 Days to Die entrypoint.
"""


class SdtdRuntimeError(Exception):
    """Base exception class for entrypoint errors."""
    pass


class ConfigError(SdtdRuntimeError):
    """Raised when required entrypoint configuration is missing or invalid."""
    pass


class ConsoleConnectError(SdtdRuntimeError):
    """Raised when the console port cannot be reached or written to."""
    pass


class ConsoleTimeoutError(SdtdRuntimeError):
    """Raised when the console prompt is not observed in time."""
    pass


class ConsoleClosedError(SdtdRuntimeError):
    """Raised when the server closes the console stream before the prompt appears."""
    pass


class ConsoleStateError(SdtdRuntimeError):
    """Raised when a console operation is attempted in the wrong connection state."""
    pass


class SettingsReadError(SdtdRuntimeError):
    """Raised when the server settings file cannot be read."""
    pass


class SettingsParseError(SdtdRuntimeError):
    """Raised when the server settings file is not a valid settings document."""
    pass


class SettingsWriteError(SdtdRuntimeError):
    """Raised when the server settings file cannot be serialized or written."""
    pass


class ProcessStartError(SdtdRuntimeError):
    """Raised when the server process cannot be spawned."""
    pass


class DownloadError(SdtdRuntimeError):
    """Raised when server files or extra content cannot be downloaded."""
    pass


class ArchiveError(SdtdRuntimeError):
    """Raised when an archive is unsupported or unsafe to extract."""
    pass


class PrivilegeDropError(SdtdRuntimeError):
    """Raised when the entrypoint cannot re-execute itself as the server user."""
    pass
