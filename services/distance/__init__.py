from services.distance.credentials import (
    ApiKeyCredential,
    ClientCredentialsTokenFetcher,
    IssuedToken,
    OAuthTokenCredential,
    TokenCache,
)
from services.distance.models import DistanceResolution, ProviderAttempt, ResolvedCandidate, RoadDistance
from services.distance.providers import DistanceProvider, GoogleDistanceMatrixProvider, OsrmTableProvider
from services.distance.service import DistanceObservability, DistanceResolver, PlausibilityBand

__all__ = [
    "ApiKeyCredential",
    "ClientCredentialsTokenFetcher",
    "DistanceObservability",
    "DistanceProvider",
    "DistanceResolution",
    "DistanceResolver",
    "GoogleDistanceMatrixProvider",
    "IssuedToken",
    "OAuthTokenCredential",
    "OsrmTableProvider",
    "PlausibilityBand",
    "ProviderAttempt",
    "ResolvedCandidate",
    "RoadDistance",
    "TokenCache",
]
