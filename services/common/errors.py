from __future__ import annotations

from typing import Any, Dict, Optional


class SupplyMapError(RuntimeError):
    def __init__(self, message: str, *, code: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class SourceUnavailable(SupplyMapError):
    def __init__(self, message: str, *, code: str = "SOURCE_UNAVAILABLE", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class MalformedResponse(SupplyMapError):
    def __init__(self, message: str, *, code: str = "MALFORMED_RESPONSE", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class MissingCredential(SupplyMapError):
    def __init__(self, message: str, *, code: str = "MISSING_CREDENTIAL", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class ProviderTimeout(SupplyMapError):
    def __init__(self, message: str, *, code: str = "TIMEOUT", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class ResultCountMismatch(SupplyMapError):
    def __init__(self, message: str, *, code: str = "RESULT_COUNT_MISMATCH", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class ImplausibleDistance(SupplyMapError):
    def __init__(self, message: str, *, code: str = "IMPLAUSIBLE_DISTANCE", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class OracleError(SupplyMapError):
    def __init__(self, message: str, *, code: str = "ORACLE_ERROR", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)


class OutboundUrlError(SupplyMapError):
    def __init__(self, message: str, *, code: str = "OUTBOUND_URL_BLOCKED", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, code=code, details=details)
