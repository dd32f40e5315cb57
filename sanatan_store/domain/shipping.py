from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple


@dataclass(frozen=True)
class ShippingZone:
    zone_id: str
    display_name: str
    flat_charge: Decimal
    pincode_prefixes: Tuple[str, ...] = ()

    def matches(self, pincode: str) -> bool:
        return any(pincode.startswith(prefix) for prefix in self.pincode_prefixes)

    def to_dict(self):
        return {
            "zone_id": self.zone_id,
            "display_name": self.display_name,
            "charge": float(self.flat_charge),
        }


# Store ships from Varanasi (221xxx). Uttar Pradesh pincodes run 20xxxx-28xxxx.
LOCAL_ZONE = ShippingZone("local", "Varanasi (Local)", Decimal("30"), ("221",))
STATE_ZONE = ShippingZone(
    "state", "Uttar Pradesh", Decimal("50"),
    ("20", "21", "22", "23", "24", "25", "26", "27", "28"),
)
NATIONAL_ZONE = ShippingZone("national", "Rest of India", Decimal("80"))
UNKNOWN_ZONE = ShippingZone("unknown", "Enter pincode", Decimal("0"))

# Most specific first
ZONES = (LOCAL_ZONE, STATE_ZONE)


def shipping_zone_for(pincode: str) -> ShippingZone:
    """
    Zone for a (possibly partial) pincode. Fewer than 3 characters gives the
    unknown zone with no charge, meaning the caller needs more input.
    """
    pincode = (pincode or "").strip()
    if len(pincode) < 3:
        return UNKNOWN_ZONE
    for zone in ZONES:
        if zone.matches(pincode):
            return zone
    return NATIONAL_ZONE
