class LedgerError(Exception):
    """Base class for errors raised by the ledger services."""


class ValidationError(LedgerError):
    """The request was rejected before any external call was made."""


class ExternalMutationError(LedgerError):
    """The platform refused the quantity mutation; nothing was recorded."""

    def __init__(self, messages: list[str]):
        self.messages = [message for message in messages if message] or ["Inventory mutation failed"]
        super().__init__(" / ".join(self.messages))


class LedgerWriteError(LedgerError):
    """The ledger store could not persist an entry; reported, never raised past the writer."""


class LookupFailure(LedgerError):
    """An item, location or timezone lookup failed."""


class PlatformError(LookupFailure):
    """Transport-level failure talking to the commerce platform."""
