from typing import Any, NewType


Manifest = NewType("Manifest", dict[str, Any])
""" Represents a Kubernetes manifest. """

SecretData = dict[str, bytes]
""" The decoded payload of a Kubernetes secret. """
