"""In-memory property listings backing the reference search tools."""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Listing:
    id: str
    address: str
    city: str
    state: str
    zip: str
    property_type: str
    bedrooms: int
    bathrooms: float
    square_feet: int
    estimated_value: int
    motivation_score: int | None = None
    latitude: float = 0.0
    longitude: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


SAMPLE_LISTINGS: tuple[Listing, ...] = (
    Listing("prop_mia_001", "1420 NW 7th St", "Miami", "FL", "33125", "single_family",
            3, 2.0, 1450, 465_000, 72, 25.7781, -80.2183),
    Listing("prop_mia_002", "88 SW 12th Ave", "Miami", "FL", "33130", "condo",
            2, 2.0, 1010, 389_000, 55, 25.7665, -80.2141),
    Listing("prop_mia_003", "2301 Brickell Ave", "Miami", "FL", "33129", "condo",
            3, 3.5, 2100, 1_250_000, 20, 25.7525, -80.1977),
    Listing("prop_mia_004", "5710 NW 2nd Ave", "Miami", "FL", "33127", "multi_family",
            4, 3.0, 2300, 499_000, 81, 25.8244, -80.1995),
    Listing("prop_tpa_001", "3107 W Bay to Bay Blvd", "Tampa", "FL", "33629", "single_family",
            4, 3.0, 2650, 845_000, 35, 27.9213, -82.4943),
    Listing("prop_tpa_002", "1912 E 26th Ave", "Tampa", "FL", "33605", "single_family",
            2, 1.0, 980, 215_000, 88, 27.9705, -82.4381),
    Listing("prop_orl_001", "640 S Hughey Ave", "Orlando", "FL", "32801", "townhouse",
            3, 2.5, 1600, 342_000, 47, 28.5363, -81.3842),
    Listing("prop_jax_001", "4417 Ortega Blvd", "Jacksonville", "FL", "32210", "single_family",
            3, 2.0, 1720, 289_000, 63, 30.2712, -81.7072),
)


def find_listing(listing_id: str) -> Listing | None:
    return next((item for item in SAMPLE_LISTINGS if item.id == listing_id), None)
