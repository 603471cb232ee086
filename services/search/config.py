from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from services.common.http import HttpTransport
from services.common.local_bind import hosts_from_urls
from services.distance.credentials import (
    ApiKeyCredential,
    ClientCredentialsTokenFetcher,
    Credential,
    OAuthTokenCredential,
)
from services.distance.providers import DEFAULT_GOOGLE_URL, DEFAULT_OSRM_URL, GoogleDistanceMatrixProvider, OsrmTableProvider
from services.distance.service import DistanceObservability, DistanceResolver
from services.feedback.repository import FeedbackRepository
from services.geocoding.providers import DEFAULT_NOMINATIM_URL, NominatimGeocoder
from services.poi_source.providers import DEFAULT_OVERPASS_URL, OverpassPoiSource
from services.ranking.models import RankingConfig
from services.ranking.oracle import DEFAULT_MODEL, AnthropicRankingOracle, NullRankingOracle, RankingOracle
from services.ranking.service import ResultAssembler
from services.search.service import SearchObservability, SearchService


@dataclass(frozen=True)
class SearchConfig:
    google_api_key: Optional[str] = None
    oauth_token_url: Optional[str] = None
    oauth_client_id: Optional[str] = None
    oauth_client_secret: Optional[str] = None
    google_distance_url: str = DEFAULT_GOOGLE_URL
    osrm_url: str = DEFAULT_OSRM_URL
    overpass_url: str = DEFAULT_OVERPASS_URL
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    nominatim_user_agent: str = "SupplyMap/1.0 (store search backend)"
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = DEFAULT_MODEL
    static_mode: bool = False
    provider_timeout_s: float = 12.0
    poi_timeout_s: float = 20.0
    oracle_timeout_s: float = 15.0
    max_stores_for_road: int = 25
    max_nearby_stores: int = 10


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_search_config() -> SearchConfig:
    return SearchConfig(
        google_api_key=_optional("GOOGLE_MAPS_API_KEY"),
        oauth_token_url=_optional("DISTANCE_OAUTH_TOKEN_URL"),
        oauth_client_id=_optional("DISTANCE_OAUTH_CLIENT_ID"),
        oauth_client_secret=_optional("DISTANCE_OAUTH_CLIENT_SECRET"),
        google_distance_url=os.getenv("GOOGLE_DISTANCE_URL", SearchConfig.google_distance_url),
        osrm_url=os.getenv("OSRM_URL", SearchConfig.osrm_url),
        overpass_url=os.getenv("OVERPASS_URL", SearchConfig.overpass_url),
        nominatim_url=os.getenv("NOMINATIM_URL", SearchConfig.nominatim_url),
        nominatim_user_agent=os.getenv("NOMINATIM_USER_AGENT", SearchConfig.nominatim_user_agent),
        anthropic_api_key=_optional("ANTHROPIC_API_KEY"),
        anthropic_model=os.getenv("ANTHROPIC_MODEL", SearchConfig.anthropic_model),
        static_mode=os.getenv("SUPPLY_MAP_STATIC_MODE", "false").lower() == "true",
        provider_timeout_s=float(os.getenv("PROVIDER_TIMEOUT_S", "12")),
        poi_timeout_s=float(os.getenv("POI_TIMEOUT_S", "20")),
        oracle_timeout_s=float(os.getenv("ORACLE_TIMEOUT_S", "15")),
        max_stores_for_road=int(os.getenv("MAX_STORES_FOR_ROAD", "25")),
        max_nearby_stores=int(os.getenv("MAX_NEARBY_STORES", "10")),
    )


def build_distance_credential(cfg: SearchConfig, transport: HttpTransport) -> Optional[Credential]:
    if cfg.static_mode:
        return None
    if cfg.oauth_token_url and cfg.oauth_client_id and cfg.oauth_client_secret:
        fetcher = ClientCredentialsTokenFetcher(
            token_url=cfg.oauth_token_url,
            client_id=cfg.oauth_client_id,
            client_secret=cfg.oauth_client_secret,
            transport=transport,
        )
        return OAuthTokenCredential(fetcher=fetcher)
    return ApiKeyCredential(cfg.google_api_key)


def build_ranking_oracle(cfg: SearchConfig) -> RankingOracle:
    if cfg.static_mode or not cfg.anthropic_api_key:
        return NullRankingOracle()
    return AnthropicRankingOracle.from_api_key(
        cfg.anthropic_api_key,
        model=cfg.anthropic_model,
        timeout_s=cfg.oracle_timeout_s,
    )


def build_search_service(
    *,
    config: Optional[SearchConfig] = None,
    feedback: Optional[FeedbackRepository] = None,
) -> tuple[SearchService, NominatimGeocoder, FeedbackRepository]:
    cfg = config or load_search_config()
    urls = [
        cfg.google_distance_url,
        cfg.osrm_url,
        cfg.overpass_url,
        cfg.nominatim_url,
        cfg.oauth_token_url,
    ]
    allowed_hosts = hosts_from_urls(urls)
    transport = HttpTransport(allowed_hosts=allowed_hosts, timeout_s=cfg.provider_timeout_s)

    google = GoogleDistanceMatrixProvider(
        credential=build_distance_credential(cfg, transport),
        base_url=cfg.google_distance_url,
        transport=transport,
        allowed_hosts=allowed_hosts,
        timeout_s=cfg.provider_timeout_s,
    )
    osrm = OsrmTableProvider(
        base_url=cfg.osrm_url,
        transport=transport,
        allowed_hosts=allowed_hosts,
        timeout_s=cfg.provider_timeout_s,
    )
    poi_source = OverpassPoiSource(
        base_url=cfg.overpass_url,
        transport=transport,
        allowed_hosts=allowed_hosts,
        timeout_s=cfg.poi_timeout_s,
    )
    geocoder = NominatimGeocoder(
        base_url=cfg.nominatim_url,
        transport=transport,
        allowed_hosts=allowed_hosts,
        user_agent=cfg.nominatim_user_agent,
    )

    resolver = DistanceResolver(
        providers=[google, osrm],
        max_for_road=cfg.max_stores_for_road,
        observability=DistanceObservability(),
    )
    assembler = ResultAssembler(
        oracle=build_ranking_oracle(cfg),
        config=RankingConfig(max_results=cfg.max_nearby_stores),
    )
    repo = feedback or FeedbackRepository()
    service = SearchService(
        poi_source=poi_source,
        resolver=resolver,
        assembler=assembler,
        feedback=repo,
        observability=SearchObservability(),
        static_mode=cfg.static_mode,
    )
    return service, geocoder, repo
