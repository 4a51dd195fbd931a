"""
Retouch Shared Package

Static template catalog, prompts and variation profiles.
"""

from .prompts import (
    VARIATION_PROFILES,
    VariationProfile,
    get_variation_profile,
)
from .templates import (
    TEMPLATES,
    get_default_template,
    get_template,
    get_templates,
)

__all__ = [
    "VARIATION_PROFILES",
    "VariationProfile",
    "get_variation_profile",
    "TEMPLATES",
    "get_default_template",
    "get_template",
    "get_templates",
]
