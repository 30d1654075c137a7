import json
import os
import re
import sys
from typing import Any, Dict, List, Optional

import pytest

API_BASE = "https://assets.example.test"
WORKSPACE_ID = "ws-1"
ASSETS_BASE = f"{API_BASE}/{WORKSPACE_ID}/v1"


def pytest_sessionstart(session):
    # Ensure src is importable for tests
    repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
    src_path = os.path.join(repo_root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep settings from the developer's environment out of the tests."""
    for var in ("JIRA_OBJECTS_CONFIG", "ASSETS_WORKSPACE_ID", "JIRA_AUTH_STRING",
                "JIRA_OBJECTS_LOG_FILE", "JIRA_OBJECTS_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    yield


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=None, headers=None):
        self.status_code = status_code
        self._json = json_data
        if text is not None:
            self.text = text
        else:
            self.text = json.dumps(json_data) if json_data is not None else ""
        self.headers = headers or {}

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Records requests and answers them through a handler callable."""

    def __init__(self, handler):
        self.handler = handler
        self.headers = {}
        self.calls = []

    def request(self, method, url, json=None, **kwargs):
        self.calls.append((method, url, json))
        return self.handler(method, url, json)


class FakeAssetsService:
    """In-memory stand-in for the Assets REST API of one workspace."""

    def __init__(self):
        self.schemas: Dict[int, List[Dict[str, Any]]] = {}
        self.type_names: Dict[str, int] = {}
        self.objects: Dict[int, Dict[str, Any]] = {}
        self.failing_create_types = set()
        self.next_id = 1000
        self.session = FakeSession(self.handle)

    # setup helpers

    def add_type(self, object_type_id: int, name: str, attributes: List[Dict[str, Any]]):
        self.schemas[object_type_id] = attributes
        self.type_names[name] = object_type_id

    def add_object(self, object_type_id: int, label: str, attributes: Optional[Dict[int, List[Any]]] = None):
        label_attr = next(a for a in self.schemas[object_type_id] if a.get("label"))
        entries = {label_attr["id"]: [label]}
        entries.update(attributes or {})
        return self._store(object_type_id, [
            {"objectTypeAttributeId": attr_id, "objectAttributeValues": [{"value": v} for v in values]}
            for attr_id, values in entries.items()
        ])

    # inspection helpers

    @property
    def calls(self):
        return self.session.calls

    def calls_for(self, method, fragment=""):
        return [call for call in self.session.calls if call[0] == method and fragment in call[1]]

    def objects_of_type(self, object_type_id: int):
        return [obj for obj in self.objects.values() if obj["objectType"]["id"] == object_type_id]

    def find(self, object_type_id: int, label: str):
        matches = [obj for obj in self.objects_of_type(object_type_id) if obj["label"] == label]
        return matches[0] if matches else None

    # request handling

    def _attribute(self, object_type_id, attribute_id):
        for attribute in self.schemas.get(object_type_id, []):
            if str(attribute["id"]) == str(attribute_id):
                return attribute
        return None

    def _render_values(self, object_type_id, attribute_id, values):
        attribute = self._attribute(object_type_id, attribute_id)
        rendered = []
        for entry in values:
            value = entry["value"]
            if attribute and attribute.get("referenceObjectTypeId"):
                referenced = self.objects[int(value)]
                rendered.append({"value": str(value), "displayValue": referenced["label"],
                                 "referencedObject": {"id": referenced["id"], "label": referenced["label"]}})
            else:
                rendered.append({"value": value, "displayValue": str(value)})
        return rendered

    def _label_of(self, object_type_id, attributes):
        for entry in attributes:
            attribute = self._attribute(object_type_id, entry["objectTypeAttributeId"])
            if attribute and attribute.get("label") and entry["objectAttributeValues"]:
                return str(entry["objectAttributeValues"][0]["value"])
        return ""

    def _store(self, object_type_id, attributes, object_id=None):
        if object_id is None:
            object_id = self.next_id
            self.next_id += 1
        obj = {
            "id": object_id,
            "objectKey": f"OBJ-{object_id}",
            "label": self._label_of(object_type_id, attributes),
            "objectType": {"id": object_type_id},
            "attributes": [
                {
                    "objectTypeAttributeId": int(entry["objectTypeAttributeId"]),
                    "objectAttributeValues": self._render_values(
                        object_type_id, entry["objectTypeAttributeId"], entry["objectAttributeValues"]),
                }
                for entry in attributes
            ],
        }
        self.objects[object_id] = obj
        return json.loads(json.dumps(obj))

    def _search(self, ql_query):
        match = re.fullmatch(r'Label = "((?:[^"\\]|\\.)*)" AND objectTypeId = (\d+)', ql_query)
        if match:
            label = re.sub(r'\\(.)', r'\1', match.group(1))
            return [o for o in self.objects_of_type(int(match.group(2))) if o["label"] == label]
        match = re.fullmatch(r'objectTypeId = (\d+)', ql_query)
        if match:
            return self.objects_of_type(int(match.group(1)))
        match = re.fullmatch(r'objectType = "(.*)"', ql_query)
        if match:
            type_id = self.type_names.get(match.group(1))
            return self.objects_of_type(type_id) if type_id is not None else []
        return []

    def handle(self, method, url, body):
        assert url.startswith(ASSETS_BASE + "/"), url
        path, _, query = url[len(ASSETS_BASE) + 1:].partition("?")
        parts = path.split("/")

        if method == "GET" and parts[0] == "objecttype":
            schema = self.schemas.get(int(parts[1]))
            if schema is None:
                return FakeResponse(404, text="not found")
            return FakeResponse(200, schema)

        if method == "POST" and path == "object/aql":
            start = int(query.split("=")[1]) if query.startswith("startAt=") else 0
            results = self._search(body["qlQuery"])
            return FakeResponse(200, {"startAt": start, "maxResults": 25, "total": len(results),
                                      "values": results[start:start + 25]})

        if method == "POST" and path == "object/create":
            type_id = int(body["objectTypeId"])
            if type_id in self.failing_create_types:
                return FakeResponse(400, {"errorMessages": ["rejected"]})
            return FakeResponse(201, self._store(type_id, body["attributes"]))

        if parts[0] == "object" and len(parts) == 2:
            obj = self.objects.get(int(parts[1]))
            if obj is None:
                return FakeResponse(404, text="not found")
            if method == "GET":
                return FakeResponse(200, obj)
            if method == "DELETE":
                del self.objects[obj["id"]]
                return FakeResponse(204)
            if method == "PUT":
                type_id = obj["objectType"]["id"]
                merged = {e["objectTypeAttributeId"]: [{"value": v["value"]} for v in e["objectAttributeValues"]]
                          for e in obj["attributes"]}
                for entry in body["attributes"]:
                    merged[int(entry["objectTypeAttributeId"])] = entry["objectAttributeValues"]
                attributes = [{"objectTypeAttributeId": k, "objectAttributeValues": v} for k, v in merged.items()]
                return FakeResponse(200, self._store(type_id, attributes, object_id=obj["id"]))

        return FakeResponse(400, text=f"unhandled {method} {url}")


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "log_file": "",
        "log_level": 3,
        "workspace_id": WORKSPACE_ID,
        "auth_string": "ci@example.com:token_ci_123",
        "api_base_url": API_BASE,
    }))
    return path


@pytest.fixture
def config(config_file):
    from jira_objects.config import Config

    return Config(config_file=str(config_file))


@pytest.fixture
def service():
    """Assets service with a Server -> Operating System -> Vendor reference chain."""
    fake = FakeAssetsService()
    fake.add_type(30, "Vendors", [
        {"id": 300, "name": "Name", "label": True},
        {"id": 301, "name": "Description"},
    ])
    fake.add_type(22, "Operating Systems", [
        {"id": 220, "name": "Name", "label": True},
        {"id": 221, "name": "Manufacturer", "referenceObjectTypeId": 30},
        {"id": 222, "name": "Notes"},
    ])
    fake.add_type(21, "Servers", [
        {"id": 210, "name": "Hostname", "label": True},
        {"id": 211, "name": "Operating System", "referenceObjectTypeId": 22},
        {"id": 212, "name": "Manufacturer", "referenceObjectTypeId": 30},
        {"id": 213, "name": "Description"},
        {"id": 214, "name": "CPU Count"},
        {"id": 215, "name": "Tags"},
    ])
    return fake


@pytest.fixture
def client(config, service):
    from jira_objects.jira_assets_client import JiraAssetsClient

    return JiraAssetsClient(config, session=service.session)


@pytest.fixture
def manager(client):
    from jira_objects.object_manager import ObjectManager

    return ObjectManager(client, max_reference_depth=5)
