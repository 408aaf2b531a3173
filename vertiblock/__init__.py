"""VertiBlock dashboard authentication: token lifecycle API and client."""

__version__ = "0.3.0"
