"""Product to device family resolution."""

import logging
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ereader_updater.errors import UnsupportedProductError

DEFAULT_PRODUCT = "monzaTolino"

logger = logging.getLogger("ereader_updater.device")

# Unbranded names (monza, spaBW, ...) are used by the qt5 legacy update.
PRODUCT_FAMILIES: dict[str, str] = {
    "monzaTolino": "monza",
    "monzaKobo": "monza",
    "monza": "monza",
    "spaTolinoBW": "spa-bw",
    "spaKoboBW": "spa-bw",
    "spaBW": "spa-bw",
    "spaTolinoColour": "spa-colour",
    "spaKoboColour": "spa-colour",
    "spaColour": "spa-colour",
}


class DeviceProfile(BaseModel):
    """Resolved device identity for one run."""

    model_config = ConfigDict(frozen=True)

    product: str
    family: str


def resolve_device_profile(product: str) -> DeviceProfile:
    """Map a product identifier to its device family.

    Raises:
        UnsupportedProductError: If the product is not in the table
    """
    try:
        family = PRODUCT_FAMILIES[product]
    except KeyError:
        raise UnsupportedProductError(product) from None
    return DeviceProfile(product=product, family=family)


def select_product(product: Optional[str], environ: Mapping[str, str]) -> str:
    """Pick the product from the argument, then ``PRODUCT``, then the compat default."""
    if product:
        return product
    if environ.get("PRODUCT"):
        return environ["PRODUCT"]
    logger.warning("No PRODUCT specified. Assuming monza for compat.")
    return DEFAULT_PRODUCT
