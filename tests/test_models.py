import pytest

from connector_kit.descriptor.model import (
    AuthType,
    ConnectionField,
    ConnectorDescriptor,
    ControlType,
    FieldType,
    SchemaField,
    TriggerStrategy,
    materialize_fields,
)
from connector_kit.errors import DanglingObjectReference, MalformedDescriptor


def _execute(connection, input, http):
    return {"ok": True}


def _raw(**overrides) -> dict:
    raw = {
        "connection": {
            "fields": [
                {"name": "api_key", "control_type": "password"},
                {"name": "subdomain"},
            ],
            "authorization": {
                "type": "custom_auth",
                "apply": lambda c: {"Authorization": f"Bearer {c['api_key']}"},
            },
            "base_uri": lambda c: f"https://{c['subdomain']}.example.com/api/v1",
        },
        "actions": {
            "get_record": {
                "title": "Get record",
                "execute": _execute,
                "output_fields": lambda defs: defs["record"],
            },
        },
        "object_definitions": {
            "record": {"fields": lambda: [{"name": "id"}, {"name": "created_at", "type": "date_time"}]},
        },
    }
    raw.update(overrides)
    return raw


class TestConnectionField:
    def test_defaults(self):
        f = ConnectionField(name="subdomain")
        assert f.control is ControlType.TEXT
        assert f.optional is False
        assert f.is_secret is False

    def test_password_is_secret(self):
        f = ConnectionField(name="api_key", control_type="password")
        assert f.is_secret is True

    def test_unknown_control_type_is_kept(self):
        f = ConnectionField(name="region", control_type="dial")
        assert f.control_type == "dial"
        assert f.control is None


class TestSchemaField:
    def test_type_aliases_fold(self):
        assert SchemaField(name="n", type="integer").type is FieldType.NUMBER
        assert SchemaField(name="d", type="date").type is FieldType.DATETIME

    def test_materialize_rejects_duplicates(self):
        with pytest.raises(MalformedDescriptor, match="duplicate field name 'id'"):
            materialize_fields([{"name": "id"}, {"name": "id"}], "input_fields")

    def test_materialize_rejects_unknown_type(self):
        with pytest.raises(MalformedDescriptor) as exc:
            materialize_fields([{"name": "id", "type": "uuid"}], "input_fields")
        assert exc.value.location == "input_fields[0]"

    def test_materialize_accepts_generators(self):
        fields = materialize_fields(({"name": n} for n in ("a", "b")), "x")
        assert [f.name for f in fields] == ["a", "b"]


class TestConnectorDescriptor:
    def test_from_mapping(self):
        d = ConnectorDescriptor.from_mapping(_raw())
        assert d.connection.authorization.type is AuthType.CUSTOM
        assert [a.name for a in d.list_actions()] == ["get_record"]
        assert d.list_triggers() == []
        assert d.actions["get_record"].title == "Get record"

    def test_missing_connection(self):
        raw = _raw()
        del raw["connection"]
        with pytest.raises(MalformedDescriptor, match="'connection'"):
            ConnectorDescriptor.from_mapping(raw)

    def test_missing_actions(self):
        raw = _raw()
        del raw["actions"]
        with pytest.raises(MalformedDescriptor, match="'actions'"):
            ConnectorDescriptor.from_mapping(raw)

    def test_duplicate_connection_field(self):
        raw = _raw()
        raw["connection"]["fields"].append({"name": "api_key"})
        with pytest.raises(MalformedDescriptor, match="duplicate field name 'api_key'"):
            ConnectorDescriptor.from_mapping(raw)

    def test_duplicate_action_in_list_form(self):
        raw = _raw(actions=[
            {"name": "get_record", "execute": _execute},
            {"name": "get_record", "execute": _execute},
        ])
        with pytest.raises(MalformedDescriptor, match="duplicate name 'get_record'"):
            ConnectorDescriptor.from_mapping(raw)

    def test_explicit_name_must_match_key(self):
        raw = _raw(actions={"get_record": {"name": "fetch_record", "execute": _execute}})
        with pytest.raises(MalformedDescriptor, match="named 'fetch_record' but keyed as 'get_record'") as exc:
            ConnectorDescriptor.from_mapping(raw)
        assert exc.value.location == "actions.get_record"

    def test_explicit_name_matching_key(self):
        raw = _raw(actions={"get_record": {"name": "get_record", "execute": _execute}})
        assert ConnectorDescriptor.from_mapping(raw).actions["get_record"].name == "get_record"

    def test_unknown_authorization_type(self):
        raw = _raw()
        raw["connection"]["authorization"]["type"] = "magic"
        with pytest.raises(MalformedDescriptor):
            ConnectorDescriptor.from_mapping(raw)

    def test_execute_must_be_callable(self):
        raw = _raw(actions={"get_record": {"execute": "get('/records')"}})
        with pytest.raises(MalformedDescriptor) as exc:
            ConnectorDescriptor.from_mapping(raw)
        assert "get_record" in exc.value.location

    def test_poll_trigger_requires_poll(self):
        raw = _raw(triggers={"new_record": {"strategy": "poll"}})
        with pytest.raises(MalformedDescriptor, match="poll"):
            ConnectorDescriptor.from_mapping(raw)

    def test_webhook_trigger(self):
        raw = _raw(triggers={"on_event": {
            "strategy": "webhook",
            "webhook_notification": lambda input, payload: payload,
        }})
        d = ConnectorDescriptor.from_mapping(raw)
        assert d.triggers["on_event"].strategy is TriggerStrategy.WEBHOOK

    def test_resolve_base_uri(self):
        d = ConnectorDescriptor.from_mapping(_raw())
        assert d.resolve_base_uri({"subdomain": "acme"}) == "https://acme.example.com/api/v1"

    def test_resolve_object_definition(self):
        d = ConnectorDescriptor.from_mapping(_raw())
        fields = d.resolve_object_definition("record").resolve_fields()
        assert [(f.name, f.type) for f in fields] == [("id", FieldType.STRING), ("created_at", FieldType.DATETIME)]

    def test_resolve_missing_object_definition(self):
        d = ConnectorDescriptor.from_mapping(_raw())
        with pytest.raises(DanglingObjectReference):
            d.resolve_object_definition("invoice")

    def test_object_definitions_view(self):
        d = ConnectorDescriptor.from_mapping(_raw())
        view = d.object_definitions_view()
        assert "record" in view
        assert view.get("invoice") is None
        assert len(view["record"]) == 2
        with pytest.raises(DanglingObjectReference):
            view["invoice"]

    def test_class_based_executor(self):
        class GetRecord:
            def __call__(self, connection, input, http):
                return {"id": input["id"]}

        d = ConnectorDescriptor.from_mapping(_raw(actions={"get_record": {"execute": GetRecord()}}))
        assert d.actions["get_record"].execute({}, {"id": "7"}, None) == {"id": "7"}
