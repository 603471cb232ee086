from enum import Enum


class DistanceSource(str, Enum):
    primary = "primary"
    secondary = "secondary"
    none = "none"


class DistanceProviderName(str, Enum):
    google = "google"
    osrm = "osrm"


class PoiProvider(str, Enum):
    overpass = "overpass"


class GeoProvider(str, Enum):
    nominatim = "nominatim"


class DistanceUnit(str, Enum):
    mi = "mi"
    km = "km"
