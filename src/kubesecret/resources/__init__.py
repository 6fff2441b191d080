"""
This package contains dataclasses that mirror the subset of Kubernetes resources that kubesecret manages.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, cast
from typing_extensions import Self
from databind.core import ExtraKeys
from databind.json import load as deser, dump as ser

from kubesecret.tools.types import Manifest


class Resource(ABC):
    """
    Base class for Kubernetes resources that can be loaded from and dumped to a manifest.
    """

    API_VERSION: ClassVar[str]
    """
    The API version of the resource, e.g. `v1` for core resources.
    """

    KIND: ClassVar[str]
    """
    The kind identifier of the resource. If not set, this will default to the class name.
    """

    def __init_subclass__(cls, api_version: str, kind: str | None = None) -> None:
        cls.API_VERSION = api_version
        if kind is not None or "KIND" not in vars(cls):
            cls.KIND = kind or cls.__name__

    @classmethod
    def matches(cls, manifest: Manifest) -> bool:
        """
        Check if the manifest has the `apiVersion` and `kind` of this resource class.
        """

        return manifest.get("apiVersion") == cls.API_VERSION and manifest.get("kind") == cls.KIND

    @classmethod
    def load(cls, manifest: Manifest) -> "Self":
        """
        Load the resource from a manifest. Fields that are not modeled by the resource class, such as the
        server-populated parts of the object metadata, are ignored.

        Raises:
            ValueError: If the manifest's `apiVersion` or `kind` does not match the resource class.
        """

        if not cls.matches(manifest):
            raise ValueError(
                f"Expected {cls.API_VERSION}/{cls.KIND}, got {manifest.get('apiVersion')}/{manifest.get('kind')}"
            )

        manifest = Manifest(dict(manifest))
        manifest.pop("apiVersion")
        manifest.pop("kind")

        return cast(Self, deser(manifest, cls))

    @abstractmethod
    def dump(self) -> Manifest:
        """
        Dump the resource to a manifest.
        """

        raise NotImplementedError


@ExtraKeys()
@dataclass
class ObjectMetadata:
    """
    Kubernetes object metadata.
    """

    name: str
    namespace: str | None = None
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None

    def dump(self) -> dict[str, object]:
        """
        Dump the metadata, leaving out fields that are not set.
        """

        return {key: value for key, value in ser(self, ObjectMetadata).items() if value is not None}
