"""Custom exceptions for ChangeScope."""


class ChangeScopeError(Exception):
    """Base exception for all ChangeScope errors."""


class ConfigError(ChangeScopeError):
    """Configuration-related errors."""


class RepositoryError(ChangeScopeError):
    """Source repository access errors."""


class LLMError(ChangeScopeError):
    """LLM provider errors."""


class ReasoningBackendError(LLMError):
    """The reasoning backend could not produce a response."""


class ToolError(ChangeScopeError):
    """Agent tool errors."""


class ToolExecutionError(ToolError):
    """A single tool invocation failed.

    Never escapes the agent loop: the registry turns it into an error result
    that is fed back to the model.
    """


class EmbeddingError(ChangeScopeError):
    """Embedding backend errors."""


class EmbeddingServerError(EmbeddingError):
    """Embedding request failed on every server that was tried."""


class BatchPipelineError(EmbeddingError):
    """A batch failed while embedding; the whole indexing call is aborted."""


class CacheIntegrityError(ChangeScopeError):
    """A persisted cache record is missing, corrupt or stale."""


class UninitializedIndexError(ChangeScopeError):
    """The semantic index was used before anything was indexed."""


class ProviderNotAvailableError(LLMError):
    """Raised when a provider's SDK is not installed."""

    def __init__(self, provider: str, package: str):
        super().__init__(
            f"Provider '{provider}' requires the '{package}' package. "
            f"Install it with: pip install changescope[{provider}]"
        )
