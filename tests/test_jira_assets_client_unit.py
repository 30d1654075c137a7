import base64

import pytest
import requests

from conftest import ASSETS_BASE, FakeResponse, FakeSession
from jira_objects.jira_assets_client import JiraAssetsClient, quote_aql
from jira_objects.models import ObjectTypeSchema, Outcome


def _client_with(config, handler):
    session = FakeSession(handler)
    return JiraAssetsClient(config, session=session), session


def test_session_headers_use_basic_auth(client, service):
    token = service.session.headers["Authorization"].split(" ", 1)[1]

    assert service.session.headers["Authorization"].startswith("Basic ")
    assert base64.b64decode(token).decode() == "ci@example.com:token_ci_123"
    assert service.session.headers["Accept"] == "application/json"
    assert service.session.headers["Content-Type"] == "application/json"


def test_get_schema_requests_own_attributes(client, service):
    schema = client.get_schema(21)

    assert isinstance(schema, ObjectTypeSchema)
    assert schema.label_attribute.name == "Hostname"
    method, url, body = service.calls[-1]
    assert method == "GET"
    assert url == f"{ASSETS_BASE}/objecttype/21/attributes?excludeParentAttributes=true&includeValueExist=true"
    assert body is None


def test_get_schema_unknown_type_is_not_found(client):
    assert client.get_schema(999) is Outcome.NOT_FOUND


def test_get_schema_empty_result_is_not_found(config):
    client, _ = _client_with(config, lambda method, url, body: FakeResponse(200, []))

    assert client.get_schema(21) is Outcome.NOT_FOUND


def test_get_schema_network_error_is_not_found(config):
    def handler(method, url, body):
        raise requests.exceptions.ConnectionError("down")

    client, _ = _client_with(config, handler)

    assert client.get_schema(21) is Outcome.NOT_FOUND


def test_get_by_id(client, service):
    created = service.add_object(21, "web-01")

    assert client.get_by_id(created["id"])["label"] == "web-01"
    assert client.get_by_id(424242) is Outcome.NOT_FOUND


def test_list_by_type_paginates_in_pages_of_25(client, service):
    for index in range(60):
        service.add_object(21, f"host-{index:02d}")

    objects = client.list_by_type(object_type_id=21)

    assert len(objects) == 60
    aql_calls = service.calls_for("POST", "/object/aql")
    assert [url for _, url, _ in aql_calls] == [
        f"{ASSETS_BASE}/object/aql",
        f"{ASSETS_BASE}/object/aql?startAt=25",
        f"{ASSETS_BASE}/object/aql?startAt=50",
    ]
    assert all(body == {"qlQuery": "objectTypeId = 21"} for _, _, body in aql_calls)


def test_list_by_type_by_name(client, service):
    service.add_object(22, "RHEL 9")

    objects = client.list_by_type(object_type="Operating Systems")

    assert [obj["label"] for obj in objects] == ["RHEL 9"]
    assert service.calls[-1][2] == {"qlQuery": 'objectType = "Operating Systems"'}


def test_list_by_type_without_results_is_empty_list(client):
    assert client.list_by_type(object_type_id=21) == []


@pytest.mark.parametrize("kwargs", [{}, {"object_type": "Servers", "object_type_id": 21}])
def test_list_by_type_requires_exactly_one_selector(client, service, kwargs):
    with pytest.raises(ValueError):
        client.list_by_type(**kwargs)
    assert service.calls == []


def test_query_by_aql_passes_query_verbatim(client, service):
    service.add_object(21, "web-01")

    objects = client.query_by_aql("objectTypeId = 21")

    assert len(objects) == 1
    assert service.calls[-1][2] == {"qlQuery": "objectTypeId = 21"}


def test_query_by_aql_zero_matches_is_not_found(client):
    assert client.query_by_aql('objectType = "Nothing"') is Outcome.NOT_FOUND


def test_query_by_aql_failure(config):
    client, _ = _client_with(config, lambda method, url, body: FakeResponse(500, text="boom"))

    assert client.query_by_aql("objectTypeId = 1") is Outcome.FAILURE


def test_find_by_label_and_type(client, service):
    rhel = service.add_object(22, "RHEL 9")

    assert client.find_by_label_and_type("RHEL 9", 22)["id"] == rhel["id"]
    assert service.calls[-1][2] == {"qlQuery": 'Label = "RHEL 9" AND objectTypeId = 22'}


def test_find_by_label_ambiguous_looks_like_not_found(client, service):
    service.add_object(22, "RHEL 9")
    service.add_object(22, "RHEL 9")

    assert client.find_by_label_and_type("RHEL 9", 22) is Outcome.NOT_FOUND
    assert client.find_by_label_and_type("Debian", 22) is Outcome.NOT_FOUND
    assert client.lookup_label("RHEL 9", 22).status is Outcome.AMBIGUOUS
    assert client.lookup_label("Debian", 22).status is Outcome.NOT_FOUND


def test_label_with_quotes_is_escaped(client, service):
    service.add_object(22, 'Say "hi"')

    assert client.find_by_label_and_type('Say "hi"', 22)
    assert quote_aql('a"b\\c') == '"a\\"b\\\\c"'


def test_submit_create_requires_object_key(config):
    client, session = _client_with(config, lambda method, url, body: FakeResponse(201, {"id": 5}))

    assert client.submit_create(21, []) is Outcome.FAILURE
    method, url, body = session.calls[0]
    assert (method, url) == ("POST", f"{ASSETS_BASE}/object/create")
    assert body == {"objectTypeId": "21", "attributes": []}


def test_submit_update_error_is_failure(config):
    client, session = _client_with(config, lambda method, url, body: FakeResponse(403, text="nope"))

    assert client.submit_update(5, 21, [{"objectTypeAttributeId": 1, "objectAttributeValues": []}]) is Outcome.FAILURE
    assert session.calls[0][0] == "PUT"
    assert session.calls[0][1] == f"{ASSETS_BASE}/object/5"


def test_delete_object(client, service):
    created = service.add_object(21, "web-01")

    assert client.delete_object(created["id"]) is True
    assert created["id"] not in service.objects
    assert client.delete_object(created["id"]) is False


def test_delete_object_network_error(config):
    def handler(method, url, body):
        raise requests.exceptions.Timeout("slow")

    client, _ = _client_with(config, handler)

    assert client.delete_object(1) is False
