"""Email adapter registry: fake by default, Resend in production."""

from storefront.config import Settings

_email_instance = None


def build_email_adapter(settings: Settings):
    adapter = settings.EMAIL_ADAPTER
    if adapter == "fake":
        from storefront.email.fake_email import FakeEmailAdapter

        return FakeEmailAdapter()
    if adapter == "resend":
        from storefront.email.resend import ResendEmailAdapter

        return ResendEmailAdapter(
            api_key=settings.RESEND_API_KEY,
            sender=settings.EMAIL_FROM,
            api_url=settings.RESEND_API_URL,
            timeout=settings.OUTBOUND_TIMEOUT_SECONDS,
        )
    raise ValueError(f"Unknown email adapter: {adapter}")


def get_email_adapter(settings: Settings):
    """Return the process-wide email adapter (singleton)."""
    global _email_instance
    if _email_instance is None:
        _email_instance = build_email_adapter(settings)
    return _email_instance


def reset_email_adapter():
    """Reset the email adapter singleton (useful for testing)."""
    global _email_instance
    _email_instance = None
