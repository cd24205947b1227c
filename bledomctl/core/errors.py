"""Domain-specific errors for bledomctl."""


class BledomctlError(Exception):
    """Base error for bledomctl."""


class ConfigLoadError(BledomctlError):
    """Raised when reading the configuration file fails."""


class ConfigValidationError(BledomctlError):
    """Raised when the configuration does not conform to schema or semantics."""


class MissingDeviceIdentityError(BledomctlError):
    """Raised when no device UUID/address has been configured."""


class ColourRangeError(BledomctlError):
    """Raised when a hue or saturation request is outside its valid range."""


class TransportError(BledomctlError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when connecting or resolving the write characteristic fails."""


class TransportWriteError(TransportError):
    """Raised when a frame could not be written to the device."""


class ScanError(TransportError):
    """Raised when the adapter refuses to start or stop scanning."""


class ReadinessTimeoutError(TransportError):
    """Raised when the device did not become ready within the wait budget."""
