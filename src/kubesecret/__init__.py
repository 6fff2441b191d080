"""
kubesecret manages the lifecycle of Kubernetes secrets through a validating, fluent builder.
"""

from kubesecret.builder import SecretBuilder, SecretBuilderError, SecretNotFoundError, list_secrets, pull
from kubesecret.clients import Client
from kubesecret.resources.secret import Secret

__all__ = [
    "Client",
    "Secret",
    "SecretBuilder",
    "SecretBuilderError",
    "SecretNotFoundError",
    "list_secrets",
    "pull",
]
