"""
Exception hierarchy for the retrieval core.

Fatal errors (model loading, embedding) propagate to the caller.
Backend and cache errors are absorbed by the component that raised them.
"""


class RetrievalCoreError(Exception):
    """Base class for retrieval core errors."""
    pass


class ModelLoadError(RetrievalCoreError):
    """A model could not be initialized on any execution path."""

    def __init__(self, model_name: str, failures: dict):
        self.model_name = model_name
        self.failures = dict(failures)
        details = "; ".join(f"{device}: {error}" for device, error in self.failures.items())
        super().__init__(f"Failed to initialize model '{model_name}'. {details}")


class EmbeddingError(RetrievalCoreError):
    """Embedding inference failed after the model was loaded."""
    pass


class RemoteBackendError(RetrievalCoreError):
    """The remote vector backend returned an error."""
    pass


class CacheStoreError(RetrievalCoreError):
    """The cache persistence layer failed."""
    pass


class RerankError(RetrievalCoreError):
    """Cross-encoder inference failed after the model was loaded."""
    pass
