from unittest.mock import patch

import pytest
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic.exceptions import ForbiddenError, NotFoundError
from urllib3.exceptions import MaxRetryError

from kubesecret.builder import SecretBuilder, SecretBuilderError, SecretNotFoundError, list_secrets, pull
from kubesecret.clients import Client
from kubesecret.clients.testing import FakeDynamicClient, get_test_client
from kubesecret.resources import ObjectMetadata
from kubesecret.resources.secret import Secret

DEFAULT_NAME = "test-name"
DEFAULT_NAMESPACE = "test-namespace"
DEFAULT_TYPE = "test-secretType"


def make_secret(name: str = DEFAULT_NAME, namespace: str = DEFAULT_NAMESPACE, **data: bytes) -> Secret:
    return Secret(metadata=ObjectMetadata(name=name, namespace=namespace), data=dict(data))


def make_builder(*existing: Secret) -> tuple[SecretBuilder, FakeDynamicClient]:
    client, dynamic = get_test_client(*existing)
    return SecretBuilder(client, DEFAULT_NAME, DEFAULT_NAMESPACE, DEFAULT_TYPE), dynamic


def client_data(builder: SecretBuilder) -> dict[str, bytes]:
    assert builder.client is not None
    return builder.client.get(DEFAULT_NAME, DEFAULT_NAMESPACE).data


def forbidden() -> ForbiddenError:
    return ForbiddenError(ApiException(status=403, reason="Forbidden"))


# Construction


@pytest.mark.parametrize(
    "name,namespace,secret_type,expected_error",
    [
        (DEFAULT_NAME, DEFAULT_NAMESPACE, DEFAULT_TYPE, ""),
        ("", DEFAULT_NAMESPACE, DEFAULT_TYPE, "secret 'name' cannot be empty"),
        (DEFAULT_NAME, "", DEFAULT_TYPE, "secret 'nsname' cannot be empty"),
        (DEFAULT_NAME, DEFAULT_NAMESPACE, "", "secret 'secretType' cannot be empty"),
        ("", "", "", "secret 'name' cannot be empty"),
        (DEFAULT_NAME, "", "", "secret 'nsname' cannot be empty"),
    ],
)
def test__SecretBuilder__init(name: str, namespace: str, secret_type: str, expected_error: str) -> None:
    client, dynamic = get_test_client()
    builder = SecretBuilder(client, name, namespace, secret_type)

    assert builder.error_msg == expected_error
    assert builder.definition is not None
    assert builder.object is None
    assert dynamic.requests == []
    if not expected_error:
        assert builder.definition.name == name
        assert builder.definition.namespace == namespace
        assert builder.definition.type == secret_type


def test__pull() -> None:
    client, _ = get_test_client(make_secret(token=b"abc"))

    builder = pull(client, DEFAULT_NAME, DEFAULT_NAMESPACE)

    assert builder.error_msg == ""
    assert builder.definition == make_secret(token=b"abc")
    assert builder.object == builder.definition
    assert builder.object is not builder.definition


@pytest.mark.parametrize(
    "name,namespace,has_client,expected_error",
    [
        ("", DEFAULT_NAMESPACE, True, "secret name cannot be empty"),
        (DEFAULT_NAME, "", True, "secret namespace cannot be empty"),
        (DEFAULT_NAME, DEFAULT_NAMESPACE, False, "secret client cannot be empty"),
    ],
)
def test__pull__invalid_arguments(name: str, namespace: str, has_client: bool, expected_error: str) -> None:
    client, dynamic = get_test_client(make_secret())

    with pytest.raises(SecretBuilderError) as excinfo:
        pull(client if has_client else None, name, namespace)

    assert str(excinfo.value) == expected_error
    assert dynamic.requests == []


def test__pull__not_found() -> None:
    client, _ = get_test_client(make_secret(name="other"))

    with pytest.raises(SecretNotFoundError) as excinfo:
        pull(client, "missing", "ns")

    assert str(excinfo.value) == "secret object missing not found in namespace ns"


def test__pull__propagates_api_errors() -> None:
    client, dynamic = get_test_client(make_secret())

    with patch.object(dynamic, "get", side_effect=forbidden()), pytest.raises(ForbiddenError):
        pull(client, DEFAULT_NAME, DEFAULT_NAMESPACE)


def test__list_secrets() -> None:
    labelled = make_secret(name="web-creds", token=b"abc")
    labelled.metadata.labels = {"app": "web"}
    client, _ = get_test_client(labelled, make_secret(name="db-creds"), make_secret(namespace="elsewhere"))

    builders = list_secrets(client, DEFAULT_NAMESPACE)
    assert [b.definition.name for b in builders if b.definition] == ["db-creds", "web-creds"]
    assert all(b.object == b.definition and b.error_msg == "" for b in builders)

    builders = list_secrets(client, DEFAULT_NAMESPACE, label_selector="app=web")
    assert [b.object.data for b in builders if b.object] == [{"token": b"abc"}]


def test__list_secrets__invalid_arguments() -> None:
    client, _ = get_test_client()

    with pytest.raises(SecretBuilderError, match="secret client cannot be empty"):
        list_secrets(None, DEFAULT_NAMESPACE)
    with pytest.raises(SecretBuilderError, match="secret namespace cannot be empty"):
        list_secrets(client, "")


# Validation


def test__SecretBuilder__validate__valid_builder() -> None:
    builder, _ = make_builder()
    assert builder.validate() is True


def test__SecretBuilder__validate__nil_builder() -> None:
    with pytest.raises(SecretBuilderError) as excinfo:
        SecretBuilder.validate(None)  # type: ignore[arg-type]
    assert str(excinfo.value) == "error: received nil Secret builder"


@pytest.mark.parametrize(
    "definition_nil,client_nil,expected_error",
    [
        (True, False, "can not redefine the undefined Secret"),
        (True, True, "can not redefine the undefined Secret"),
        (False, True, "Secret builder cannot have nil apiClient"),
    ],
)
def test__SecretBuilder__validate__check_order(definition_nil: bool, client_nil: bool, expected_error: str) -> None:
    builder, _ = make_builder()
    if definition_nil:
        builder.definition = None
    if client_nil:
        builder.client = None

    with pytest.raises(SecretBuilderError) as excinfo:
        builder.validate()
    assert str(excinfo.value) == expected_error


def test__SecretBuilder__validate__rejects_builder_with_error() -> None:
    client, _ = get_test_client()
    builder = SecretBuilder(client, DEFAULT_NAME, "", DEFAULT_TYPE)

    with pytest.raises(SecretBuilderError, match="secret 'nsname' cannot be empty"):
        builder.validate()


def test__SecretBuilder__validate__rejects_definition_without_namespace() -> None:
    builder, _ = make_builder()
    assert builder.definition is not None
    builder.definition.metadata.namespace = ""

    with pytest.raises(SecretBuilderError, match="secret 'nsname' cannot be empty"):
        builder.validate()


# Mutators


def test__SecretBuilder__with_data() -> None:
    builder, _ = make_builder()
    assert builder.definition is not None

    assert builder.with_data({"key": b"value"}) is builder
    assert builder.definition.data == {"key": b"value"}
    assert builder.error_msg == ""

    builder.with_data({"key": "overwritten", "other": "ü"})
    assert builder.definition.data == {"key": b"overwritten", "other": "ü".encode("utf-8")}


def test__SecretBuilder__with_data__empty() -> None:
    builder, _ = make_builder()
    assert builder.definition is not None

    builder.with_data({})

    assert builder.error_msg == "'data' cannot be empty"
    assert builder.definition.data == {}


def test__SecretBuilder__with_data__rejects_other_value_types() -> None:
    builder, _ = make_builder()
    assert builder.definition is not None

    builder.with_data({"user": "admin", "port": 5432})  # type: ignore[dict-item]

    assert builder.error_msg == "'data' value for 'port' must be bytes or str, not int"
    assert builder.definition.data == {}


@pytest.mark.parametrize(
    "annotations,expected_error",
    [
        ({"openshift.io/internal-registry-auth-token.binding": "bound"}, ""),
        ({"openshift.io/internal-registry-auth-token.service-account": "default"}, ""),
        ({}, "'annotations' argument cannot be empty"),
    ],
)
def test__SecretBuilder__with_annotations(annotations: dict[str, str], expected_error: str) -> None:
    builder, _ = make_builder()
    assert builder.definition is not None
    builder.definition.metadata.annotations = {"previous": "value"}

    builder.with_annotations(annotations)

    assert builder.error_msg == expected_error
    if not expected_error:
        assert builder.definition.metadata.annotations == annotations
    else:
        assert builder.definition.metadata.annotations == {"previous": "value"}


def test__SecretBuilder__with_labels() -> None:
    builder, _ = make_builder()
    assert builder.definition is not None

    builder.with_labels({"app": "web"})
    assert builder.definition.metadata.labels == {"app": "web"}

    builder.with_labels({})
    assert builder.error_msg == "'labels' argument cannot be empty"
    assert builder.definition.metadata.labels == {"app": "web"}


def test__SecretBuilder__with_options() -> None:
    builder, _ = make_builder()
    assert builder.with_options(lambda b: b).error_msg == ""

    def fail(b: SecretBuilder) -> SecretBuilder:
        raise ValueError("error")

    def unreachable(b: SecretBuilder) -> SecretBuilder:
        raise AssertionError("option must not be applied after an error")

    builder, _ = make_builder()
    assert builder.with_options(fail, unreachable) is builder
    assert builder.error_msg == "error"


def test__SecretBuilder__with_options__mutates_definition() -> None:
    def with_tls_type(b: SecretBuilder) -> SecretBuilder:
        assert b.definition is not None
        b.definition.type = "kubernetes.io/tls"
        return b

    builder, _ = make_builder()
    builder.with_options(with_tls_type)

    assert builder.definition is not None
    assert builder.definition.type == "kubernetes.io/tls"


def test__SecretBuilder__with_options__option_returning_none() -> None:
    def with_tls_type(b: SecretBuilder) -> None:
        assert b.definition is not None
        b.definition.type = "kubernetes.io/tls"

    builder, _ = make_builder()
    assert builder.with_options(with_tls_type, lambda b: b.with_labels({"app": "web"})) is builder

    assert builder.error_msg == ""
    assert builder.definition is not None
    assert builder.definition.type == "kubernetes.io/tls"
    assert builder.definition.metadata.labels == {"app": "web"}


def test__SecretBuilder__error_is_sticky() -> None:
    builder, _ = make_builder()
    assert builder.definition is not None

    builder.with_data({}).with_data({"key": b"value"}).with_annotations({"a": "b"}).with_labels({"c": "d"})
    builder.with_options(lambda b: b)

    assert builder.error_msg == "'data' cannot be empty"
    assert builder.definition.data == {}
    assert builder.definition.metadata.annotations is None
    assert builder.definition.metadata.labels is None


# Cluster operations


def test__SecretBuilder__exists() -> None:
    builder, _ = make_builder(make_secret(token=b"abc"))
    assert builder.exists() is True
    assert builder.object == make_secret(token=b"abc")

    builder, _ = make_builder()
    assert builder.exists() is False
    assert builder.object is None


def test__SecretBuilder__exists__invalid_builder_does_not_contact_cluster() -> None:
    client, dynamic = get_test_client(make_secret())
    builder = SecretBuilder(client, DEFAULT_NAME, DEFAULT_NAMESPACE, "")

    assert builder.exists() is False
    assert dynamic.requests == []


def test__SecretBuilder__exists__api_error() -> None:
    builder, dynamic = make_builder(make_secret())

    with patch.object(dynamic, "get", side_effect=forbidden()):
        assert builder.exists() is False


def test__SecretBuilder__exists__transport_error() -> None:
    builder, dynamic = make_builder(make_secret())

    with patch.object(dynamic, "get", side_effect=MaxRetryError(None, "/api/v1", "Connection refused")):
        assert builder.exists() is False
    assert builder.object is None


def test__SecretBuilder__create() -> None:
    builder, dynamic = make_builder()

    assert builder.with_data({"key": b"value"}).create() is builder

    assert builder.object is builder.definition
    assert (DEFAULT_NAMESPACE, DEFAULT_NAME) in dynamic.objects
    assert pull(builder.client, DEFAULT_NAME, DEFAULT_NAMESPACE).object == builder.definition


def test__SecretBuilder__create__existing_secret() -> None:
    builder, dynamic = make_builder(make_secret(key=b"remote"))

    builder.with_data({"key": b"local"}).create()

    assert builder.object == make_secret(key=b"remote")
    assert builder.definition is not None
    assert builder.definition.data == {"key": b"local"}
    assert "create" not in [verb for verb, _, _ in dynamic.requests]


def test__SecretBuilder__create__twice() -> None:
    builder, _ = make_builder()
    builder.with_data({"key": b"value"})

    builder.create()
    builder.create()

    assert builder.object == builder.definition


def test__SecretBuilder__create__invalid_builder() -> None:
    client, dynamic = get_test_client()
    builder = SecretBuilder(client, DEFAULT_NAME, DEFAULT_NAMESPACE, DEFAULT_TYPE).with_annotations({})

    with pytest.raises(SecretBuilderError, match="'annotations' argument cannot be empty"):
        builder.create()
    assert dynamic.requests == []
    assert builder.object is None


def test__SecretBuilder__create__propagates_api_errors() -> None:
    builder, dynamic = make_builder()

    with patch.object(dynamic, "create", side_effect=forbidden()), pytest.raises(ForbiddenError):
        builder.create()
    assert builder.object is None


def test__SecretBuilder__update__missing_secret() -> None:
    builder, _ = make_builder()
    builder.with_data({"key": b"test"})

    with pytest.raises(NotFoundError):
        builder.update()

    assert builder.object is None
    assert builder.definition is not None


def test__SecretBuilder__update() -> None:
    client, _ = get_test_client(make_secret(key=b"value"))
    builder = pull(client, DEFAULT_NAME, DEFAULT_NAMESPACE)
    assert builder.definition is not None

    builder.definition.data["key"] = b"test"
    builder.update()

    assert builder.object is not None
    assert builder.object.name == DEFAULT_NAME
    assert builder.object.data == {"key": b"test"}
    assert client.get(DEFAULT_NAME, DEFAULT_NAMESPACE).data == {"key": b"test"}


def test__SecretBuilder__update__force_recreates_secret() -> None:
    builder, dynamic = make_builder(make_secret(key=b"value"))
    builder.with_data({"key": b"test"})

    with patch.object(dynamic, "replace", side_effect=forbidden()):
        builder.update(force=True)

    assert builder.object is builder.definition
    assert [verb for verb, _, _ in dynamic.requests if verb in ("delete", "create")] == ["delete", "create"]
    assert client_data(builder) == {"key": b"test"}


def test__SecretBuilder__update__invalid_builder() -> None:
    builder, dynamic = make_builder(make_secret())
    builder.client = None

    with pytest.raises(SecretBuilderError, match="Secret builder cannot have nil apiClient"):
        builder.update()
    assert dynamic.requests == []


@pytest.mark.parametrize("exists_already", [True, False])
def test__SecretBuilder__delete(exists_already: bool) -> None:
    builder, _ = make_builder(*([make_secret()] if exists_already else []))
    builder.exists()

    builder.delete()

    assert builder.object is None
    with pytest.raises(SecretNotFoundError):
        pull(builder.client, DEFAULT_NAME, DEFAULT_NAMESPACE)


def test__SecretBuilder__delete__twice() -> None:
    builder, dynamic = make_builder(make_secret())

    builder.delete()
    builder.delete()

    assert [verb for verb, _, _ in dynamic.requests].count("delete") == 1


def test__SecretBuilder__delete__invalid_builder() -> None:
    builder, dynamic = make_builder(make_secret())
    builder.definition = None

    with pytest.raises(SecretBuilderError, match="can not redefine the undefined Secret"):
        builder.delete()
    assert dynamic.objects


def test__SecretBuilder__delete__propagates_api_errors() -> None:
    builder, dynamic = make_builder(make_secret())

    with patch.object(dynamic, "delete", side_effect=forbidden()), pytest.raises(ForbiddenError):
        builder.delete()


def test__SecretBuilder__lifecycle() -> None:
    client, _ = get_test_client()
    builder = SecretBuilder(client, "svc-creds", "ops", "opaque").with_data({"token": "abc"})

    builder.create()
    assert builder.object is not None
    assert builder.object.data["token"] == b"abc"

    builder.with_data({"token": "xyz"}).update()
    assert builder.error_msg == ""
    assert builder.object.data["token"] == b"xyz"

    builder.delete()
    assert builder.object is None
    assert builder.exists() is False


def test__SecretBuilder__repr() -> None:
    builder = SecretBuilder(Client(FakeDynamicClient()), "svc-creds", "ops", "Opaque")  # type: ignore[arg-type]
    assert repr(builder) == "SecretBuilder(ops/svc-creds)"
    builder.definition = None
    assert repr(builder) == "SecretBuilder(<undefined>)"
