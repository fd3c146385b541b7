"""Exception types raised by the exporter and its collaborators."""


class ExporterError(Exception):
    """Base class for every error raised by the exporter."""


class ConfigError(ExporterError):
    """A required option is missing or invalid."""


class ChainConnectionError(ExporterError):
    """The RPC endpoint could not be reached at startup."""


class StoreConnectionError(ExporterError):
    """The database could not be reached or prepared at startup."""


class TransientFetchError(ExporterError):
    """A mid-run RPC call failed; the affected unit of work is skipped."""


class RPCError(TransientFetchError):
    """Transport failure, HTTP error, JSON-RPC error or malformed payload."""


class RPCTimeoutError(RPCError):
    """An RPC call exceeded its deadline."""


class NotFoundError(RPCError):
    """The node has no header at the requested height yet."""


class StorageError(ExporterError):
    """A single database read or write failed."""


class PushError(ExporterError):
    """Pushing metrics to the Pushgateway failed."""
