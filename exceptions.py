"""
Exceptions raised by smart account orchestration
"""

from typing import Optional


class SmartAccountError(Exception):
    """Base exception for smart account errors."""
    pass


class ConfigurationError(SmartAccountError):
    """Raised for missing or unsupported chain and network configuration."""
    pass


class ResolutionError(SmartAccountError):
    """Raised when the account directory service cannot resolve a wallet or chain."""
    pass


class ContextNotReadyError(SmartAccountError):
    """Raised when a chain context is used before it could be initialized."""

    def __init__(self, chain_id: int, reason: str):
        self.chain_id = chain_id
        self.reason = reason
        super().__init__(f"Chain context for {chain_id} is not ready: {reason}")


class SigningError(SmartAccountError):
    """Raised when the owner signer fails to produce a signature."""
    pass


class SigningServiceError(SmartAccountError):
    """Raised when the signing service rejects or fails a request."""
    pass


class BundlerError(SmartAccountError):
    """Raised when the bundler RPC returns an error."""

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        super().__init__(message)
