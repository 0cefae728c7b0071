"""QR pass issuance and event check-in."""

__version__ = "0.1.0"
