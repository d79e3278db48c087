"""
Region Profile Resolution

Maps site latitude to the climate band that parameterizes feature generation.
"""

from .config import TROPICAL_LATITUDE_LIMIT, TROPICAL_PROFILE, TEMPERATE_PROFILE
from .types import RegionProfile


def determine_region_profile(latitude: float) -> RegionProfile:
    """
    Select the region profile for a latitude.

    |lat| < 30 deg is tropical (stronger, slower, southward-moving storms with
    high instability); everything else is temperate.

    Args:
        latitude: Site latitude in degrees

    Returns:
        The matching RegionProfile
    """
    if abs(latitude) < TROPICAL_LATITUDE_LIMIT:
        return TROPICAL_PROFILE
    return TEMPERATE_PROFILE
