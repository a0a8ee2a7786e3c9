"""Time ranges, row filters, timelines and configuration for a Kubernetes resource history viewer."""

__version__ = "0.1.0"