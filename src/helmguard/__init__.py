"""helmguard: run Helm releases and verify that they come up healthy."""

__version__ = "0.1.0"
