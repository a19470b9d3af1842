class LLMError(Exception):
    """Raised when a generation backend call fails (network/API/model issues)."""
    pass

class BackendNotConfiguredError(LLMError):
    """Raised when neither the requested nor the default backend is registered."""
    pass

class StorageError(Exception):
    """Raised when the JSON file store cannot be read or written."""
    pass

class NotFoundError(StorageError):
    """Raised when a stored record does not exist."""
    pass
