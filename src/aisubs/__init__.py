"""aisubs — on-demand AI subtitle translation for media players."""

__version__ = "0.3.0"
