"""
An in-memory stand-in for the Kubernetes dynamic client. It implements just enough of `DynamicClient` to back a
`kubesecret.clients.Client` in tests, and raises the same error classes as the real client does.
"""

import copy
import itertools
from dataclasses import dataclass, field
from typing import Any, Iterator

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import ConflictError, NotFoundError
from kubernetes.dynamic.resource import ResourceInstance

from kubesecret.clients import Client
from kubesecret.resources.secret import Secret
from kubesecret.tools.types import Manifest


class _FakeDiscoverer:
    def get(self, api_version: str | None = None, kind: str | None = None, **kwargs: Any) -> str:
        return f"{api_version}/{kind}"


@dataclass
class FakeDynamicClient:
    """
    Stores manifests keyed by namespace and name. Every call is recorded in `requests` as a tuple of the verb, the
    namespace and the name (if any).
    """

    objects: dict[tuple[str, str], dict[str, Any]] = field(default_factory=dict)
    requests: list[tuple[str, str, str | None]] = field(default_factory=list)
    resources: _FakeDiscoverer = field(default_factory=_FakeDiscoverer)
    _versions: Iterator[int] = field(default_factory=lambda: itertools.count(1), repr=False)

    def add(self, manifest: Manifest) -> None:
        metadata = manifest["metadata"]
        self.objects[(metadata["namespace"], metadata["name"])] = self._stamp(copy.deepcopy(manifest))

    def _stamp(self, manifest: dict[str, Any]) -> dict[str, Any]:
        # Mimic the fields that the API server populates.
        metadata = manifest["metadata"]
        metadata["resourceVersion"] = str(next(self._versions))
        metadata.setdefault("uid", f"{metadata.get('namespace', '')}-{metadata['name']}")
        metadata.setdefault("creationTimestamp", "2024-01-01T00:00:00Z")
        return manifest

    def _instance(self, manifest: dict[str, Any]) -> ResourceInstance:
        return ResourceInstance(self, copy.deepcopy(manifest))

    def _lookup(self, namespace: str, name: str) -> dict[str, Any]:
        try:
            return self.objects[(namespace, name)]
        except KeyError:
            raise NotFoundError(ApiException(status=404, reason="Not Found"))

    def get(
        self,
        resource: str,
        name: str | None = None,
        namespace: str | None = None,
        label_selector: str | None = None,
        **kwargs: Any,
    ) -> ResourceInstance:
        self.requests.append(("get", namespace or "", name))
        if name is not None:
            return self._instance(self._lookup(namespace or "", name))

        selector = dict(item.split("=", 1) for item in label_selector.split(",")) if label_selector else {}
        items = [
            manifest
            for (ns, _), manifest in sorted(self.objects.items())
            if ns == namespace
            and all((manifest["metadata"].get("labels") or {}).get(k) == v for k, v in selector.items())
        ]
        return self._instance({"apiVersion": "v1", "kind": "SecretList", "items": items})

    def create(
        self,
        resource: str,
        body: dict[str, Any],
        namespace: str | None = None,
        **kwargs: Any,
    ) -> ResourceInstance:
        name = body["metadata"]["name"]
        self.requests.append(("create", namespace or "", name))
        if (namespace or "", name) in self.objects:
            raise ConflictError(ApiException(status=409, reason="Conflict"))
        manifest = self._stamp(copy.deepcopy(body))
        self.objects[(namespace or "", name)] = manifest
        return self._instance(manifest)

    def replace(
        self,
        resource: str,
        body: dict[str, Any],
        name: str | None = None,
        namespace: str | None = None,
        **kwargs: Any,
    ) -> ResourceInstance:
        name = name or body["metadata"]["name"]
        self.requests.append(("replace", namespace or "", name))
        existing = self._lookup(namespace or "", name)
        manifest = copy.deepcopy(body)
        manifest["metadata"]["uid"] = existing["metadata"]["uid"]
        manifest["metadata"]["creationTimestamp"] = existing["metadata"]["creationTimestamp"]
        self.objects[(namespace or "", name)] = self._stamp(manifest)
        return self._instance(manifest)

    def delete(self, resource: str, name: str | None = None, namespace: str | None = None, **kwargs: Any) -> None:
        self.requests.append(("delete", namespace or "", name))
        self._lookup(namespace or "", name or "")
        del self.objects[(namespace or "", name or "")]


def get_test_client(*secrets: Secret) -> tuple[Client, FakeDynamicClient]:
    """
    Create a `Client` backed by a `FakeDynamicClient` that contains the given secrets.
    """

    dynamic = FakeDynamicClient()
    for secret in secrets:
        dynamic.add(secret.dump())
    return Client(dynamic), dynamic  # type: ignore[arg-type]
