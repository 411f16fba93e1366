"""Sample connector used by the test suite."""

connector = {
    "title": "Sample Connector",

    "connection": {
        "fields": [
            {
                "name": "api_key",
                "label": "API Key",
                "hint": "Your API key from the service",
                "optional": False,
                "control_type": "password",
            },
            {
                "name": "subdomain",
                "label": "Subdomain",
                "hint": "Your account subdomain (e.g. 'mycompany')",
                "optional": False,
            },
        ],
        "authorization": {
            "type": "custom_auth",
            "apply": lambda connection: {"Authorization": f"Bearer {connection['api_key']}"},
        },
        "base_uri": lambda connection: f"https://{connection['subdomain']}.example.com/api/v1",
    },

    "test": lambda connection, http: http.get("/ping"),

    "actions": {
        "get_record": {
            "title": "Get record",
            "subtitle": "Retrieves a single record by ID",
            "input_fields": lambda object_definitions: [
                {"name": "id", "type": "string", "optional": False},
            ],
            "execute": lambda connection, input, http: http.get(f"/records/{input['id']}"),
            "output_fields": lambda object_definitions: object_definitions["record"],
        },
        "create_record": {
            "title": "Create record",
            "input_fields": lambda object_definitions: [
                {"name": "name", "type": "string", "optional": False},
            ],
            "execute": lambda connection, input, http: http.post("/records", payload={"name": input["name"]}),
            "output_fields": lambda object_definitions: object_definitions["record"],
        },
    },

    "triggers": {
        "new_record": {
            "title": "New record",
            "strategy": "poll",
            "poll": lambda connection, input, closure, http: {
                "events": http.get("/records", params={"since": closure or 0})["items"],
                "closure": 2,
            },
            "output_fields": lambda object_definitions: object_definitions["record"],
        },
    },

    "object_definitions": {
        "record": {
            "fields": lambda: [
                {"name": "id", "type": "string"},
                {"name": "name", "type": "string"},
                {"name": "created_at", "type": "datetime"},
                {"name": "updated_at", "type": "datetime"},
            ],
        },
    },
}
