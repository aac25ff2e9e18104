"""Exception hierarchy for the firewall log shipper."""


class IptablesLokiError(Exception):
    """Base class for all errors raised by this package."""


class StartupError(IptablesLokiError):
    """Unrecoverable failure while bringing the shipper up."""


class ConfigError(StartupError):
    """Raised when the configuration file cannot be read or is invalid."""


class GeoIpError(StartupError):
    """Raised when a configured GeoIP database cannot be opened."""


class TailerError(StartupError):
    """Raised when the log file watcher cannot be set up."""


class EntryError(IptablesLokiError):
    """Raised when a parsed line carries malformed address or port values."""


class EncodeError(IptablesLokiError):
    """Raised when a batch cannot be serialized or compressed."""
