from collections.abc import Iterator
from contextlib import contextmanager
import sys
from typing import Optional

from kubernetes.client.exceptions import ApiException
from loguru import logger
from typer import Argument, Option
from urllib3.exceptions import HTTPError
import yaml

from kubesecret.builder import SecretBuilder, list_secrets, pull
from kubesecret.resources.secret import SECRET_TYPE_OPAQUE
from kubesecret.tools.typer import parse_key_value_pairs

from . import app, connect

NAMESPACE_OPTION = Option("default", "--namespace", "-n", help="The namespace of the secret.")
FROM_LITERAL_OPTION = Option(None, "--from-literal", help="A `key=value` pair to add to the secret data. Repeatable.")
ANNOTATION_OPTION = Option(None, "--annotation", help="A `key=value` annotation to set on the secret. Repeatable.")
LABEL_OPTION = Option(None, "--label", help="A `key=value` label to set on the secret. Repeatable.")


@contextmanager
def _handle_errors() -> Iterator[None]:
    """
    Report builder errors, Kubernetes API errors and connection failures as log messages and exit with status code 1.
    """

    try:
        yield
    except KeyError as exc:
        logger.error("{}", exc.args[0])
        sys.exit(1)
    except ValueError as exc:
        logger.error("{}", exc)
        sys.exit(1)
    except ApiException as exc:
        logger.error("Kubernetes API request failed: {} {}", exc.status, exc.reason)
        sys.exit(1)
    except HTTPError as exc:
        logger.error("Could not connect to the Kubernetes API: {}", exc)
        sys.exit(1)


def _apply_mutations(
    builder: SecretBuilder,
    from_literal: list[str] | None,
    annotation: list[str] | None,
    label: list[str] | None,
) -> None:
    if from_literal:
        builder.with_data(parse_key_value_pairs(from_literal, "--from-literal"))
    if annotation:
        builder.with_annotations(parse_key_value_pairs(annotation, "--annotation"))
    if label:
        builder.with_labels(parse_key_value_pairs(label, "--label"))


def _print_secret(builder: SecretBuilder) -> None:
    secret = builder.object or builder.definition
    assert secret is not None
    print("---")
    print(yaml.safe_dump(secret.dump(), sort_keys=False), end="")


@app.command()
def get(name: str = Argument(..., help="The name of the secret."), namespace: str = NAMESPACE_OPTION) -> None:
    """
    Print a secret as YAML.
    """

    with _handle_errors():
        builder = pull(connect(), name, namespace)
    _print_secret(builder)


@app.command("list")
def list_command(
    namespace: str = NAMESPACE_OPTION,
    selector: Optional[str] = Option(None, "--selector", help="Only list secrets matching this label selector."),
) -> None:
    """
    List the names of the secrets in a namespace.
    """

    with _handle_errors():
        builders = list_secrets(connect(), namespace, label_selector=selector)
    for builder in builders:
        assert builder.definition is not None
        print(builder.definition.name)


@app.command()
def create(
    name: str = Argument(..., help="The name of the secret."),
    namespace: str = NAMESPACE_OPTION,
    type: str = Option(SECRET_TYPE_OPAQUE, "--type", help="The type of the secret."),
    from_literal: Optional[list[str]] = FROM_LITERAL_OPTION,
    annotation: Optional[list[str]] = ANNOTATION_OPTION,
    label: Optional[list[str]] = LABEL_OPTION,
) -> None:
    """
    Create a secret. If the secret already exists, it is left untouched and printed as it is.
    """

    with _handle_errors():
        builder = SecretBuilder(connect(), name, namespace, type)
        _apply_mutations(builder, from_literal, annotation, label)
        builder.create()
    _print_secret(builder)


@app.command()
def update(
    name: str = Argument(..., help="The name of the secret."),
    namespace: str = NAMESPACE_OPTION,
    from_literal: Optional[list[str]] = FROM_LITERAL_OPTION,
    annotation: Optional[list[str]] = ANNOTATION_OPTION,
    label: Optional[list[str]] = LABEL_OPTION,
    force: bool = Option(False, help="Delete and re-create the secret if it cannot be updated."),
) -> None:
    """
    Merge data into an existing secret and replace its annotations and labels.
    """

    with _handle_errors():
        builder = pull(connect(), name, namespace)
        _apply_mutations(builder, from_literal, annotation, label)
        builder.update(force=force)
    _print_secret(builder)


@app.command()
def delete(name: str = Argument(..., help="The name of the secret."), namespace: str = NAMESPACE_OPTION) -> None:
    """
    Delete a secret. Deleting a secret that does not exist is not an error.
    """

    with _handle_errors():
        SecretBuilder(connect(), name, namespace, SECRET_TYPE_OPAQUE).delete()


@app.command()
def exists(name: str = Argument(..., help="The name of the secret."), namespace: str = NAMESPACE_OPTION) -> None:
    """
    Print whether a secret exists. Exits with status code 1 if it does not.
    """

    with _handle_errors():
        found = SecretBuilder(connect(), name, namespace, SECRET_TYPE_OPAQUE).exists()
    print("true" if found else "false")
    if not found:
        sys.exit(1)
