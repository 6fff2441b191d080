import base64
import binascii
from dataclasses import dataclass, field
from typing import Any
from databind.core import ExtraKeys
from typing_extensions import Self

from kubesecret.resources import ObjectMetadata, Resource
from kubesecret.tools.types import Manifest, SecretData

SECRET_TYPE_OPAQUE = "Opaque"
""" The default type of a Kubernetes secret, holding arbitrary user-defined data. """


@ExtraKeys()
@dataclass(kw_only=True)
class Secret(Resource, api_version="v1"):
    """
    Represents a Kubernetes secret. The values in `data` are kept decoded in memory and are base64-encoded only when
    the secret is dumped to a manifest.
    """

    metadata: ObjectMetadata
    type: str = SECRET_TYPE_OPAQUE
    data: SecretData = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace or ""

    @classmethod
    def load(cls, manifest: Manifest) -> "Self":
        """
        Load a secret from a manifest. Both the base64-encoded `data` and the plain-text `stringData` fields are
        merged into `data`, with `stringData` taking precedence like it does on the server.

        Raises:
            ValueError: If the manifest is not a `v1/Secret` or if a `data` value is not valid base64.
        """

        manifest = Manifest(dict(manifest))
        encoded: dict[str, str] = manifest.pop("data", None) or {}
        plain: dict[str, str] = manifest.pop("stringData", None) or {}

        secret = super().load(manifest)
        for key, value in encoded.items():
            try:
                secret.data[key] = base64.b64decode(value, validate=True)
            except binascii.Error as exc:
                raise ValueError(f"Secret data key {key!r} is not valid base64: {exc}")
        for key, value in plain.items():
            secret.data[key] = value.encode("utf-8")
        return secret

    def dump(self) -> Manifest:
        manifest: dict[str, Any] = {
            "apiVersion": self.API_VERSION,
            "kind": self.KIND,
            "metadata": self.metadata.dump(),
            "type": self.type,
        }
        if self.data:
            manifest["data"] = {key: base64.b64encode(value).decode("ascii") for key, value in self.data.items()}
        return Manifest(manifest)
