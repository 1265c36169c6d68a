"""Logging and Prometheus metrics for kuberelay."""
