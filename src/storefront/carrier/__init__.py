"""Carrier adapter abstraction: pluggable shipping carrier integration."""

from storefront.config import Settings

_carrier_instance = None


def build_carrier(settings: Settings):
    """Create the carrier adapter named by ``settings.CARRIER_ADAPTER``."""
    adapter = settings.CARRIER_ADAPTER
    if adapter == "fake":
        from storefront.carrier.fake_adapter import FakeCarrier

        return FakeCarrier()
    if adapter == "packeta":
        from storefront.carrier.packeta import PacketaCarrier

        return PacketaCarrier(
            api_url=settings.PACKETA_API_URL,
            api_key=settings.PACKETA_API_KEY,
            eshop_id=settings.PACKETA_ESHOP_ID,
            timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
            max_retries=settings.CARRIER_MAX_RETRIES,
            backoff_seconds=settings.CARRIER_BACKOFF_SECONDS,
        )
    raise ValueError(f"Unknown carrier adapter: {adapter}")


def get_carrier(settings: Settings):
    """Return the process-wide carrier adapter (singleton)."""
    global _carrier_instance
    if _carrier_instance is None:
        _carrier_instance = build_carrier(settings)
    return _carrier_instance


def reset_carrier():
    """Reset the carrier singleton (useful for testing)."""
    global _carrier_instance
    _carrier_instance = None
