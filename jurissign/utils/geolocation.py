"""
Geolocation serialization.

Signer locations are structured ({lat, lon, address}); the signers table
keeps the legacy "lat, lon|address" text column.
"""
import logging
from typing import Optional

from jurissign.models import Geolocation

logger = logging.getLogger(__name__)


def format_coordinates(geo: Geolocation) -> str:
    return f"{geo.lat:.6f}, {geo.lon:.6f}"


def to_legacy_string(geo: Optional[Geolocation]) -> Optional[str]:
    """Serialize to 'lat, lon|address' (address part omitted when unknown)."""
    if geo is None:
        return None
    coords = format_coordinates(geo)
    if geo.address:
        return f"{coords}|{geo.address}"
    return coords


def parse_legacy_string(value: Optional[str]) -> Optional[Geolocation]:
    """
    Parse the legacy 'lat, lon|address' column.

    Returns None for empty or unparseable values; a row with a malformed
    location is still a valid signer record.
    """
    if not value or not value.strip():
        return None

    coords, _, address = value.partition("|")
    parts = [p.strip() for p in coords.split(",")]
    if len(parts) != 2:
        logger.warning("Unparseable geolocation value, ignoring")
        return None

    try:
        return Geolocation(
            lat=float(parts[0]),
            lon=float(parts[1]),
            address=address.strip() or None,
        )
    except ValueError:
        # float() failure or out-of-range pydantic validation
        logger.warning("Invalid geolocation coordinates, ignoring")
        return None


def describe(geo: Optional[Geolocation]) -> str:
    """Human readable line for the certificate."""
    if geo is None:
        return "Nao informada"
    coords = format_coordinates(geo)
    return f"{coords} ({geo.address})" if geo.address else coords
