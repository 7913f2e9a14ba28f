"""
Named zones (bounding boxes) used to label reports by area.
"""
from dataclasses import dataclass
from typing import List, Optional

DEFAULT_ZONE = "Gaza City"
DEFAULT_REGION = "palestine"


@dataclass(frozen=True)
class Zone:
    name: str
    region: str
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


ZONES: List[Zone] = [
    # Palestine - Gaza
    Zone("North Gaza", "palestine", 31.54, 31.64, 34.43, 34.53),
    Zone("Gaza City", "palestine", 31.50, 31.54, 34.43, 34.53),
    Zone("Central Gaza", "palestine", 31.43, 31.50, 34.43, 34.53),
    Zone("Khan Younis", "palestine", 31.34, 31.43, 34.30, 34.53),
    Zone("Rafah", "palestine", 31.25, 31.34, 34.23, 34.53),
    # Sudan
    Zone("Khartoum", "sudan", 15.45, 15.70, 32.45, 32.65),
    Zone("Omdurman", "sudan", 15.60, 15.75, 32.40, 32.55),
    Zone("Darfur", "sudan", 12.0, 16.0, 22.0, 27.0),
    # Yemen
    Zone("Sana'a", "yemen", 15.30, 15.45, 44.15, 44.25),
    Zone("Aden", "yemen", 12.75, 12.85, 44.95, 45.10),
    Zone("Taiz", "yemen", 13.55, 13.65, 44.00, 44.10),
    # Syria
    Zone("Aleppo", "syria", 36.15, 36.25, 37.10, 37.20),
    Zone("Damascus", "syria", 33.50, 33.55, 36.25, 36.35),
    Zone("Idlib", "syria", 35.90, 36.00, 36.60, 36.70),
    # Ukraine
    Zone("Kyiv", "ukraine", 50.35, 50.55, 30.40, 30.70),
    Zone("Kharkiv", "ukraine", 49.90, 50.10, 36.15, 36.40),
    Zone("Mariupol", "ukraine", 47.05, 47.15, 37.50, 37.65),
    Zone("Donetsk", "ukraine", 47.95, 48.10, 37.75, 37.90),
    Zone("Bakhmut", "ukraine", 48.55, 48.65, 37.95, 38.10),
    # Afghanistan
    Zone("Kabul", "afghanistan", 34.45, 34.60, 69.10, 69.30),
    Zone("Kandahar", "afghanistan", 31.55, 31.70, 65.65, 65.80),
    Zone("Herat", "afghanistan", 34.30, 34.45, 62.15, 62.30),
    Zone("Mazar-i-Sharif", "afghanistan", 36.65, 36.80, 67.05, 67.20),
    # Lebanon
    Zone("Beirut", "lebanon", 33.85, 33.95, 35.45, 35.55),
    Zone("Tripoli", "lebanon", 34.40, 34.50, 35.80, 35.90),
    Zone("South Lebanon", "lebanon", 33.05, 33.35, 35.10, 35.60),
    # Somalia
    Zone("Mogadishu", "somalia", 2.00, 2.10, 45.30, 45.45),
    Zone("Kismayo", "somalia", -0.40, -0.30, 42.50, 42.60),
    Zone("Baidoa", "somalia", 3.10, 3.20, 43.60, 43.70),
]


def zone_from_coords(lat: float, lng: float) -> str:
    """Name of the first zone containing the point, else the default zone."""
    for zone in ZONES:
        if zone.contains(lat, lng):
            return zone.name
    return DEFAULT_ZONE


def get_zone(name: str) -> Optional[Zone]:
    return next((z for z in ZONES if z.name == name), None)


def zones_by_region(region: str) -> List[Zone]:
    key = (region or DEFAULT_REGION).lower().strip()
    return [z for z in ZONES if z.region == key]
