"""
This package wraps the Kubernetes API with the handful of verbs that kubesecret needs to manage secrets.
"""

from functools import cached_property
from pathlib import Path
from typing import Any

from kubernetes.client.api_client import ApiClient
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.resource import Resource as ApiResource
from loguru import logger

from kubesecret.resources.secret import Secret
from kubesecret.tools.types import Manifest


class Client:
    """
    Manages Kubernetes secrets through the dynamic client.

    Errors reported by the API server are not translated; a secret that does not exist surfaces as the dynamic
    client's `kubernetes.dynamic.exceptions.NotFoundError`.
    """

    def __init__(self, dynamic: DynamicClient) -> None:
        self.dynamic = dynamic

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.dynamic!r})"

    @staticmethod
    def from_api_client(api_client: ApiClient) -> "Client":
        return Client(DynamicClient(api_client))

    @staticmethod
    def from_kubeconfig(kubeconfig: Path | None = None, context: str | None = None) -> "Client":
        """
        Create a client from a Kubeconfig file. If no file is specified, the default location is used (per
        `KUBECONFIG` or otherwise `~/.kube/config`).
        """

        from kubernetes.config.kube_config import new_client_from_config

        logger.debug("Loading Kubeconfig '{}' (context: {})", kubeconfig or "<default>", context or "<current>")
        api_client = new_client_from_config(config_file=str(kubeconfig) if kubeconfig else None, context=context)
        return Client.from_api_client(api_client)

    @staticmethod
    def in_cluster() -> "Client":
        """
        Create a client from the service account that is mounted into the Pod this process runs in.
        """

        from kubernetes.config.incluster_config import load_incluster_config

        logger.debug("Loading in-cluster configuration")
        load_incluster_config()
        return Client.from_api_client(ApiClient())

    @cached_property
    def _secrets(self) -> ApiResource:
        return self.dynamic.resources.get(api_version="v1", kind="Secret")

    def get(self, name: str, namespace: str) -> Secret:
        logger.debug("Getting secret '{}' in namespace '{}'", name, namespace)
        return _to_secret(self.dynamic.get(self._secrets, name=name, namespace=namespace).to_dict())

    def create(self, secret: Secret) -> Secret:
        logger.debug("Creating secret '{}' in namespace '{}'", secret.name, secret.namespace)
        result = self.dynamic.create(self._secrets, body=secret.dump(), namespace=secret.namespace)
        return _to_secret(result.to_dict())

    def update(self, secret: Secret) -> Secret:
        logger.debug("Replacing secret '{}' in namespace '{}'", secret.name, secret.namespace)
        result = self.dynamic.replace(self._secrets, body=secret.dump(), name=secret.name, namespace=secret.namespace)
        return _to_secret(result.to_dict())

    def delete(self, name: str, namespace: str) -> None:
        logger.debug("Deleting secret '{}' in namespace '{}'", name, namespace)
        self.dynamic.delete(self._secrets, name=name, namespace=namespace)

    def list(self, namespace: str, label_selector: str | None = None) -> list[Secret]:
        logger.debug("Listing secrets in namespace '{}' (selector: {})", namespace, label_selector)
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        result = self.dynamic.get(self._secrets, namespace=namespace, **kwargs).to_dict()
        return [_to_secret({"apiVersion": "v1", "kind": "Secret", **item}) for item in result.get("items") or []]


def _to_secret(manifest: dict[str, Any]) -> Secret:
    return Secret.load(Manifest(manifest))
