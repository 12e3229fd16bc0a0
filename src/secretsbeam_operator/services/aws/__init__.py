"""AWS Secrets Manager and IAM provider."""

from .client import AWSProvider

__all__ = ["AWSProvider"]
