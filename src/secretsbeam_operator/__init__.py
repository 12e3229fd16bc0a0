"""Kubernetes operator for externally stored secrets and access grants."""

__version__ = "0.1.0"
