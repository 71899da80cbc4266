import pytest

from protoc_gen_openapi.errors import PathCollisionError, UnsupportedFieldKindError
from protoc_gen_openapi.models import Operation, PathItem, Schema
from protoc_gen_openapi.path_converter import (
    PathConverter,
    merge_paths,
    method_bindings,
)
from protoc_gen_openapi.registry import TypeRegistry
from protoc_gen_openapi.schema_converter import SchemaConverter
from protoc_gen_openapi.source_info import SourceInfoIndex

from builders import (
    greeter_file,
    make_field,
    make_file,
    make_http_rule,
    make_message,
    make_method,
    make_service,
)

USER_MESSAGES = [
    make_message("GetUserRequest", [
        make_field("id", 1, "string"),
        make_field("view", 2, "string"),
        make_field("fields", 3, "string", repeated=True),
    ]),
    make_message("UpdateUserRequest", [
        make_field("id", 1, "string"),
        make_field("user", 2, ".users.User"),
        make_field("validate_only", 3, "bool"),
    ]),
    make_message("User", [make_field("id", 1, "string"), make_field("name", 2, "string")]),
]


def _convert(file, service_index=0):
    registry = TypeRegistry()
    for i, msg in enumerate(file.message_type):
        registry.register_type(file.package, msg, file.name, (4, i))
    schemas = {}
    source_info = {file.name: SourceInfoIndex.build(file)}
    schema_converter = SchemaConverter(registry, schemas, source_info)
    converter = PathConverter(registry, schema_converter, source_info)
    paths = converter.convert_service(file, file.service[service_index], (6, service_index))
    return paths, schemas


def _users_file(*methods, comments=None):
    return make_file(
        "users.proto", "users",
        messages=USER_MESSAGES,
        services=[make_service("Users", methods)],
        comments=comments,
    )


class TestDefaultBinding:
    def test_synthetic_post_path(self):
        paths, schemas = _convert(greeter_file())

        assert list(paths) == ["/greet.Greeter/SayHello"]
        op = paths["/greet.Greeter/SayHello"].operations["post"]
        assert op.operation_id == "greet.Greeter.SayHello"
        assert op.request_body.ref == "#/components/schemas/greet.HelloRequest"
        assert op.response.ref == "#/components/schemas/greet.HelloResponse"
        assert op.parameters == []
        assert op.tags == ["greet.Greeter"]
        assert {"greet.HelloRequest", "greet.HelloResponse"} <= set(schemas)

    def test_method_bindings_default(self):
        method = make_method("SayHello", ".greet.HelloRequest", ".greet.HelloResponse")

        [binding] = method_bindings("greet.Greeter", method)

        assert (binding.verb, binding.path, binding.body) == ("post", "/greet.Greeter/SayHello", "*")


class TestHttpRuleBinding:
    def test_get_binds_path_and_query_parameters(self):
        file = _users_file(make_method(
            "GetUser", ".users.GetUserRequest", ".users.User",
            http=make_http_rule("get", "/v1/users/{id}"),
        ))

        paths, _ = _convert(file)

        op = paths["/v1/users/{id}"].operations["get"]
        assert op.request_body is None
        params = {(p.name, p.location): p for p in op.parameters}
        assert set(params) == {("id", "path"), ("view", "query"), ("fields", "query")}
        assert params[("id", "path")].required is True
        assert params[("view", "query")].required is False
        assert params[("fields", "query")].schema.type == "array"
        assert op.response.ref == "#/components/schemas/users.User"

    def test_patterned_placeholder_is_normalized(self):
        file = _users_file(make_method(
            "GetUser", ".users.GetUserRequest", ".users.User",
            http=make_http_rule("get", "/v1/{id=users/*}/profile"),
        ))

        paths, _ = _convert(file)

        assert list(paths) == ["/v1/{id}/profile"]
        [path_param] = [p for p in paths["/v1/{id}/profile"].operations["get"].parameters
                        if p.location == "path"]
        assert path_param.name == "id"
        assert "users/*" in path_param.description

    def test_parameters_follow_json_names(self):
        file = make_file(
            "acct.proto", "acct",
            messages=[
                make_message("GetRequest", [
                    make_field("account_id", 1, "string", json_name="accountId"),
                    make_field("page_size", 2, "int32", json_name="pageSize"),
                ]),
                make_message("Account"),
            ],
            services=[make_service("Accounts", [make_method(
                "Get", ".acct.GetRequest", ".acct.Account",
                http=make_http_rule("get", "/v1/accounts/{account_id}"),
            )])],
        )

        paths, _ = _convert(file)

        assert list(paths) == ["/v1/accounts/{accountId}"]
        op = paths["/v1/accounts/{accountId}"].operations["get"]
        assert [(p.name, p.location) for p in op.parameters] == [
            ("accountId", "path"), ("pageSize", "query"),
        ]

    def test_post_without_bound_fields_references_request_schema(self):
        file = _users_file(make_method(
            "UpdateUser", ".users.UpdateUserRequest", ".users.User",
            http=make_http_rule("post", "/v1/users:update", body="*"),
        ))

        paths, _ = _convert(file)

        op = paths["/v1/users:update"].operations["post"]
        assert op.request_body.ref == "#/components/schemas/users.UpdateUserRequest"
        assert op.parameters == []

    def test_put_with_bound_field_puts_remaining_fields_in_body(self):
        file = _users_file(make_method(
            "UpdateUser", ".users.UpdateUserRequest", ".users.User",
            http=make_http_rule("put", "/v1/users/{id}", body="*"),
        ))

        paths, _ = _convert(file)

        op = paths["/v1/users/{id}"].operations["put"]
        assert [p.name for p in op.parameters] == ["id"]
        assert op.request_body.type == "object"
        assert sorted(op.request_body.properties) == ["user", "validate_only"]
        assert op.request_body.properties["user"].ref == "#/components/schemas/users.User"

    def test_body_selector_names_a_single_field(self):
        file = _users_file(make_method(
            "UpdateUser", ".users.UpdateUserRequest", ".users.User",
            http=make_http_rule("patch", "/v1/users/{id}", body="user"),
        ))

        paths, _ = _convert(file)

        op = paths["/v1/users/{id}"].operations["patch"]
        assert op.request_body.ref == "#/components/schemas/users.User"
        assert [(p.name, p.location) for p in op.parameters] == [
            ("id", "path"), ("validate_only", "query"),
        ]

    def test_unknown_body_selector(self):
        file = _users_file(make_method(
            "UpdateUser", ".users.UpdateUserRequest", ".users.User",
            http=make_http_rule("post", "/v1/users", body="nope"),
        ))

        with pytest.raises(UnsupportedFieldKindError, match="nope"):
            _convert(file)

    def test_delete_surfaces_remaining_fields_as_query(self):
        file = _users_file(make_method(
            "DeleteUser", ".users.UpdateUserRequest", ".users.User",
            http=make_http_rule("delete", "/v1/users/{id}"),
        ))

        paths, _ = _convert(file)

        op = paths["/v1/users/{id}"].operations["delete"]
        assert op.request_body is None
        assert [p.location for p in op.parameters] == ["path", "query", "query"]

    def test_additional_bindings_add_operations(self):
        rule = make_http_rule(
            "get", "/v1/users/{id}",
            additional=[make_http_rule("get", "/v2/users/{id}")],
        )
        file = _users_file(make_method("GetUser", ".users.GetUserRequest", ".users.User", http=rule))

        paths, _ = _convert(file)

        assert sorted(paths) == ["/v1/users/{id}", "/v2/users/{id}"]

    def test_custom_pattern_uses_kind_as_verb(self):
        rule = make_http_rule("get", "")
        rule.custom.kind = "HEAD"
        rule.custom.path = "/v1/users/{id}"
        file = _users_file(make_method("CheckUser", ".users.GetUserRequest", ".users.User", http=rule))

        paths, _ = _convert(file)

        assert list(paths["/v1/users/{id}"].operations) == ["head"]

    def test_placeholder_on_message_field_is_rejected(self):
        file = _users_file(make_method(
            "UpdateUser", ".users.UpdateUserRequest", ".users.User",
            http=make_http_rule("put", "/v1/users/{user}", body="*"),
        ))

        with pytest.raises(UnsupportedFieldKindError, match="user"):
            _convert(file)

    def test_placeholder_on_repeated_field_is_rejected(self):
        file = _users_file(make_method(
            "GetUser", ".users.GetUserRequest", ".users.User",
            http=make_http_rule("get", "/v1/users/{fields}"),
        ))

        with pytest.raises(UnsupportedFieldKindError):
            _convert(file)

    def test_placeholder_on_missing_field_is_rejected(self):
        file = _users_file(make_method(
            "GetUser", ".users.GetUserRequest", ".users.User",
            http=make_http_rule("get", "/v1/users/{missing}"),
        ))

        with pytest.raises(UnsupportedFieldKindError, match="missing"):
            _convert(file)


class TestServiceConversion:
    def test_streaming_methods_get_a_default_path(self):
        file = greeter_file()
        file.service[0].method.add().CopyFrom(make_method(
            "SayHellos", ".greet.HelloRequest", ".greet.HelloResponse", streaming=True,
        ))

        paths, _ = _convert(file)

        assert sorted(paths) == ["/greet.Greeter/SayHello", "/greet.Greeter/SayHellos"]
        op = paths["/greet.Greeter/SayHellos"].operations["post"]
        assert op.request_body.ref == "#/components/schemas/greet.HelloRequest"
        assert op.response.ref == "#/components/schemas/greet.HelloResponse"

    def test_verbs_share_a_path_item(self):
        file = _users_file(
            make_method("GetUser", ".users.GetUserRequest", ".users.User",
                        http=make_http_rule("get", "/v1/users/{id}")),
            make_method("DeleteUser", ".users.GetUserRequest", ".users.User",
                        http=make_http_rule("delete", "/v1/users/{id}")),
        )

        paths, _ = _convert(file)

        assert sorted(paths["/v1/users/{id}"].operations) == ["delete", "get"]

    def test_same_verb_and_path_collides(self):
        file = _users_file(
            make_method("GetUser", ".users.GetUserRequest", ".users.User",
                        http=make_http_rule("get", "/v1/users/{id}")),
            make_method("FetchUser", ".users.GetUserRequest", ".users.User",
                        http=make_http_rule("get", "/v1/users/{id}")),
        )

        with pytest.raises(PathCollisionError) as exc:
            _convert(file)

        assert "users.Users.GetUser" in str(exc.value)
        assert "users.Users.FetchUser" in str(exc.value)

    def test_method_comment_becomes_description(self):
        file = _users_file(
            make_method("GetUser", ".users.GetUserRequest", ".users.User",
                        http=make_http_rule("get", "/v1/users/{id}")),
            comments={(6, 0, 2, 0): " Fetches one user.\n", (4, 0, 2, 1): "How much to return."},
        )

        paths, _ = _convert(file)

        op = paths["/v1/users/{id}"].operations["get"]
        assert op.description == "Fetches one user."
        view = next(p for p in op.parameters if p.name == "view")
        assert view.schema.description == "How much to return."


class TestMergePaths:
    def _op(self, operation_id):
        return Operation(operation_id=operation_id, response=Schema.reference("x.Y"))

    def test_merges_distinct_verbs(self):
        target = {"/a": PathItem({"get": self._op("s.A")})}

        merge_paths(target, {"/a": PathItem({"post": self._op("s.B")}), "/b": PathItem({"get": self._op("s.C")})})

        assert sorted(target["/a"].operations) == ["get", "post"]
        assert "/b" in target

    def test_rejects_duplicate_verb(self):
        target = {"/a": PathItem({"get": self._op("s.A")})}

        with pytest.raises(PathCollisionError, match="s.B"):
            merge_paths(target, {"/a": PathItem({"get": self._op("s.B")})})
