class GatewayError(Exception):
    """Base exception class for the LLM gateway."""
    pass

class ConfigError(GatewayError):
    """Raised when the settings or the model catalog cannot be loaded."""
    pass

class ProviderRequestError(GatewayError):
    """Raised when a backend call fails or returns an unusable response."""

    def __init__(self, provider: str, cause: object):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider} request failed: {cause}")

class ProviderUnavailableError(GatewayError):
    """Raised when a provider is disabled or its health probe fails."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(message)

class NoModelsAvailableError(ProviderUnavailableError):
    """Raised when a local backend is reachable but has no models installed."""

    def __init__(self, provider: str):
        super().__init__(provider, f"No models available in {provider}")

class SchemaValidationError(GatewayError):
    """Raised when model output is not JSON or does not match the target schema."""
    pass

class UnsupportedProviderError(GatewayError):
    """Raised when a request names a provider with no adapter."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Unsupported service: {provider}")

class StreamingUnsupportedError(GatewayError):
    """Raised when streaming is requested from an adapter without a chunked interface."""
    pass
