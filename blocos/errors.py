"""Exception hierarchy for the sync subsystem."""


class BlocosError(Exception):
    """Base class for all errors raised by this package."""


class RemoteStoreError(BlocosError):
    """A read or write against the remote override table failed."""


class RemoteTimeoutError(RemoteStoreError):
    """A remote call did not complete within the configured timeout."""


class SyncQueueFullError(BlocosError):
    """The pending-sync queue reached its capacity."""
