"""Local snapshot synchroniser for a per-item marketplace lookup API."""

__version__ = "0.1.0"
