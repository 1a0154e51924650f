"""
Exception types
Only RevokeError is meant to reach callers; the rest are contained by the
services that raise them and end up in the logs.
"""


class PortfolioError(Exception):
    pass


class ProviderError(PortfolioError):
    """A data provider answered with something unusable."""


class RpcError(PortfolioError):
    def __init__(self, method: str, message: str, code=None):
        super().__init__(f"{method}: {message}")
        self.method = method
        self.code = code


class StorageError(PortfolioError):
    pass


class RevokeError(PortfolioError):
    """Revoke transaction failed or was rejected by the wallet."""
