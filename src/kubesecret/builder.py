"""
This module implements the `SecretBuilder`, which manages the lifecycle of a single Kubernetes secret.

A builder holds a locally staged `definition` of the secret and, once it has been observed in the cluster, the
`object` that was returned by the API server. Mutators (the `with_*()` methods) only change the definition and never
raise; an invalid argument is recorded in `error_msg` instead and turns all further mutators into no-ops, so a chain
of mutators reports the first error that occurred. Operations that talk to the cluster first pass through
`validate()`, which rejects a builder that recorded an error before any request is sent.
"""

import copy
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import NotFoundError
from loguru import logger
from urllib3.exceptions import HTTPError

from kubesecret.clients import Client
from kubesecret.resources import ObjectMetadata
from kubesecret.resources.secret import Secret


@dataclass
class SecretBuilderError(ValueError):
    """
    Raised when a secret builder is malformed or an operation is given invalid arguments.
    """

    message: str

    def __str__(self) -> str:
        return self.message


class SecretNotFoundError(SecretBuilderError):
    """
    Raised by `pull()` when the secret does not exist in the cluster.
    """


SecretOption = Callable[["SecretBuilder"], "SecretBuilder | None"]
"""
A function that applies a custom modification to a `SecretBuilder` and returns the builder. Returning `None` keeps
the builder that was passed in. Raising a `ValueError` records the error message on the builder.
"""


class SecretBuilder:
    """
    Builder for creating, updating and deleting a Kubernetes secret.

    Constructing the builder does not contact the cluster. If *name*, *namespace* or *secret_type* is empty, the
    builder is still returned, but it carries an error in `error_msg` and will refuse all cluster operations.

    Args:
        client: The client to use for talking to the cluster.
        name: The name of the secret.
        namespace: The namespace of the secret.
        secret_type: The secret type, e.g. `Opaque` or `kubernetes.io/dockerconfigjson`.
    """

    def __init__(self, client: Client | None, name: str, namespace: str, secret_type: str) -> None:
        logger.debug(
            "Initializing secret builder for '{}' in namespace '{}' (type: {})", name, namespace, secret_type
        )

        self.client = client
        self.definition: Secret | None = Secret(
            metadata=ObjectMetadata(name=name, namespace=namespace),
            type=secret_type,
        )
        self.object: Secret | None = None
        self.error_msg = ""

        if not name:
            self.error_msg = "secret 'name' cannot be empty"
        elif not namespace:
            self.error_msg = "secret 'nsname' cannot be empty"
        elif not secret_type:
            self.error_msg = "secret 'secretType' cannot be empty"

        if self.error_msg:
            logger.debug("Secret builder is invalid: {}", self.error_msg)

    def __repr__(self) -> str:
        if self.definition is None:
            return f"{type(self).__name__}(<undefined>)"
        return f"{type(self).__name__}({self.definition.namespace}/{self.definition.name})"

    # Mutators

    def _can_mutate(self) -> bool:
        if self.definition is None:
            logger.debug("Ignoring mutation of undefined secret")
            return False
        if self.error_msg:
            logger.debug("Ignoring mutation of {!r} with error: {}", self, self.error_msg)
            return False
        return True

    def with_data(self, data: Mapping[str, bytes | str]) -> "SecretBuilder":
        """
        Merge *data* into the secret's data, overwriting existing keys. String values are encoded as UTF-8.
        """

        if not self._can_mutate():
            return self
        assert self.definition is not None

        if not data:
            self.error_msg = "'data' cannot be empty"
            return self

        for key, value in data.items():
            if not isinstance(value, (bytes, str)):
                self.error_msg = f"'data' value for {key!r} must be bytes or str, not {type(value).__name__}"
                return self

        logger.debug("Adding data keys {} to {!r}", sorted(data), self)
        for key, value in data.items():
            self.definition.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        return self

    def with_annotations(self, annotations: Mapping[str, str]) -> "SecretBuilder":
        """
        Replace the secret's annotations.
        """

        if not self._can_mutate():
            return self
        assert self.definition is not None

        if not annotations:
            self.error_msg = "'annotations' argument cannot be empty"
            return self

        logger.debug("Setting annotations {} on {!r}", annotations, self)
        self.definition.metadata.annotations = dict(annotations)
        return self

    def with_labels(self, labels: Mapping[str, str]) -> "SecretBuilder":
        """
        Replace the secret's labels.
        """

        if not self._can_mutate():
            return self
        assert self.definition is not None

        if not labels:
            self.error_msg = "'labels' argument cannot be empty"
            return self

        logger.debug("Setting labels {} on {!r}", labels, self)
        self.definition.metadata.labels = dict(labels)
        return self

    def with_options(self, *options: SecretOption) -> "SecretBuilder":
        """
        Apply custom modifications to the builder. The options are applied in order; if one of them raises a
        `ValueError`, its message is recorded in `error_msg` and the remaining options are skipped.
        """

        builder = self
        for option in options:
            if not builder._can_mutate():
                break
            try:
                result = option(builder)
            except ValueError as exc:
                logger.debug("Option {!r} failed on {!r}: {}", option, builder, exc)
                builder.error_msg = str(exc)
                break
            # Options that mutate the builder in place may not return it.
            if result is not None:
                builder = result
        return builder

    # Cluster operations

    def validate(self) -> bool:
        """
        Check that the builder can be used for cluster operations. This can also be called as
        `SecretBuilder.validate(None)`, in which case it reports the missing builder.

        Returns:
            Always `True`; an invalid builder raises instead.
        Raises:
            SecretBuilderError: If the builder is missing, has no definition or client, or has recorded an error.
        """

        if self is None:
            raise SecretBuilderError("error: received nil Secret builder")

        if self.definition is None:
            raise SecretBuilderError("can not redefine the undefined Secret")

        if self.client is None:
            raise SecretBuilderError("Secret builder cannot have nil apiClient")

        if self.error_msg:
            raise SecretBuilderError(self.error_msg)

        if not self.definition.name:
            raise SecretBuilderError("secret 'name' cannot be empty")

        if not self.definition.namespace:
            raise SecretBuilderError("secret 'nsname' cannot be empty")

        return True

    def exists(self) -> bool:
        """
        Check if the secret exists in the cluster. On success, `object` is refreshed with the observed secret. An
        invalid builder, a failing request or an unreachable API server are reported as `False`.
        """

        try:
            self.validate()
        except SecretBuilderError as exc:
            logger.debug("Cannot check existence of {!r}: {}", self, exc)
            return False
        assert self.client is not None and self.definition is not None

        try:
            self.object = self.client.get(self.definition.name, self.definition.namespace)
        except NotFoundError:
            return False
        except (ApiException, HTTPError) as exc:
            logger.warning("Failed to look up {!r}: {}", self, exc)
            return False
        return True

    def create(self) -> "SecretBuilder":
        """
        Create the secret in the cluster. If it already exists, `object` is set to the existing secret and the
        definition is not applied.

        Raises:
            SecretBuilderError: If the builder is invalid.
            kubernetes.client.exceptions.ApiException: If the API server rejects the request.
        """

        self.validate()
        assert self.client is not None and self.definition is not None

        if self.exists():
            logger.debug("{!r} already exists, not creating it", self)
            return self

        self.client.create(self.definition)
        self.object = self.definition
        logger.info("Created secret '{}' in namespace '{}'", self.definition.name, self.definition.namespace)
        return self

    def update(self, force: bool = False) -> "SecretBuilder":
        """
        Replace the secret in the cluster with the current definition. The secret must already exist; if it does
        not, the API server's `NotFoundError` is raised and `object` is left as it was.

        Args:
            force: If the update fails, delete the secret and create it from the definition instead.
        Raises:
            SecretBuilderError: If the builder is invalid.
            kubernetes.client.exceptions.ApiException: If the API server rejects the request.
        """

        self.validate()
        assert self.client is not None and self.definition is not None

        try:
            self.object = self.client.update(self.definition)
        except ApiException as exc:
            if not force:
                raise
            logger.warning("Failed to update {!r}, deleting and re-creating it: {}", self, exc)
            self.delete()
            return self.create()

        logger.info("Updated secret '{}' in namespace '{}'", self.definition.name, self.definition.namespace)
        return self

    def delete(self) -> None:
        """
        Delete the secret from the cluster and clear `object`. Deleting a secret that does not exist is not an error.

        Raises:
            SecretBuilderError: If the builder is invalid.
            kubernetes.client.exceptions.ApiException: If the API server rejects the request.
        """

        self.validate()
        assert self.client is not None and self.definition is not None

        if not self.exists():
            logger.debug("{!r} does not exist, nothing to delete", self)
            self.object = None
            return

        self.client.delete(self.definition.name, self.definition.namespace)
        self.object = None
        logger.info("Deleted secret '{}' in namespace '{}'", self.definition.name, self.definition.namespace)


def pull(client: Client | None, name: str, namespace: str) -> SecretBuilder:
    """
    Load an existing secret from the cluster into a new builder. The builder's `definition` and `object` are
    separate copies of the observed secret.

    Raises:
        SecretBuilderError: If *client* is missing or *name* or *namespace* is empty.
        SecretNotFoundError: If the secret does not exist.
        kubernetes.client.exceptions.ApiException: If the API server rejects the request.
    """

    logger.debug("Pulling existing secret '{}' in namespace '{}'", name, namespace)

    if client is None:
        raise SecretBuilderError("secret client cannot be empty")
    if not name:
        raise SecretBuilderError("secret name cannot be empty")
    if not namespace:
        raise SecretBuilderError("secret namespace cannot be empty")

    try:
        secret = client.get(name, namespace)
    except NotFoundError:
        raise SecretNotFoundError(f"secret object {name} not found in namespace {namespace}")

    builder = SecretBuilder(client, name, namespace, secret.type)
    builder.definition = secret
    builder.object = copy.deepcopy(secret)
    return builder


def list_secrets(client: Client | None, namespace: str, label_selector: str | None = None) -> list[SecretBuilder]:
    """
    Return a builder for every secret in *namespace*, optionally filtered by a label selector (e.g. `app=web`).

    Raises:
        SecretBuilderError: If *client* is missing or *namespace* is empty.
        kubernetes.client.exceptions.ApiException: If the API server rejects the request.
    """

    if client is None:
        raise SecretBuilderError("secret client cannot be empty")
    if not namespace:
        raise SecretBuilderError("secret namespace cannot be empty")

    builders = []
    for secret in client.list(namespace, label_selector=label_selector):
        builder = SecretBuilder(client, secret.name, secret.namespace, secret.type)
        builder.definition = secret
        builder.object = copy.deepcopy(secret)
        builders.append(builder)

    logger.debug("Found {} secret(s) in namespace '{}'", len(builders), namespace)
    return builders
