"""YAP: transcript export, metrics and assistant services."""

__version__ = "1.0.0"
