"""kuberelay: forward Kubernetes events once, enriched with involved-object metadata."""

__version__ = "0.1.0"
