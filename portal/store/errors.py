class StoreError(Exception):
    """The document store reported a fault; the message is the adapter's."""


class StoreUnavailable(StoreError):
    """The document store could not be reached."""


class DocumentExists(StoreError):
    """A conditional create found the key already taken."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Document already exists: {path}")


class DocumentNotFound(StoreError):
    """An update targeted a document that does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"No document to update: {path}")
