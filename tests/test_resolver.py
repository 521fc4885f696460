"""
Tests for the resolver: end-to-end operation resolution over the in-memory backend.
"""

import asyncio

import pytest

from resourcegraph.core.errors import (
    AuthorizationError,
    OPAQUE_FAILURE_MESSAGE,
    PersistenceError,
    ValidationError,
)
from resourcegraph.core.query_types import (
    NormalizedFilter,
    NormalizedOrder,
    OperationRequest,
    SelectionNode,
)
from resourcegraph.runtime.assembler import ResponseAssembler
from resourcegraph.runtime.context import Principal
from resourcegraph.runtime.resolver import Resolver
from resourcegraph.runtime.tasks import gather_or_cancel


def _ids(connection):
    return [edge["node"]["id"] for edge in connection["edges"]]


class TestOfferScenario:
    async def test_filters_orders_and_paginates(self, resolver, backend, anonymous):
        operation = OperationRequest(
            operation="query",
            resource="Offer",
            args={
                "product_color_list": ["red", "green"],
                "order": {"product_releaseDate": "DESC"},
                "first": 10,
            },
            select=SelectionNode(
                fields=["id", "price"],
                relations={"product": SelectionNode(fields=["color", "releaseDate"])},
            ),
        )

        result = await resolver.resolve(operation, anonymous)

        resource, filters, ordering, window = backend.windows[0]
        assert resource == "Offer"
        assert filters == [NormalizedFilter(field="product.color", op="in", value=["red", "green"])]
        assert ordering == [
            NormalizedOrder(field="product.releaseDate", dir="desc"),
            NormalizedOrder(field="id", dir="asc"),
        ]
        assert window.offset == 0
        assert window.limit == 11

        assert result["totalCount"] == 5
        assert _ids(result) == [2, 6, 1, 5, 4]
        assert result["pageInfo"]["hasNextPage"] is False
        assert result["pageInfo"]["hasPreviousPage"] is False

        dates = [edge["node"]["product"]["releaseDate"] for edge in result["edges"]]
        assert dates == sorted(dates, reverse=True)
        assert {edge["node"]["product"]["color"] for edge in result["edges"]} == {"red", "green"}
        assert set(result["edges"][0]["node"]) == {"id", "price", "product"}

    async def test_one_relation_by_key_uses_fetch_one(self, resolver, backend, anonymous):
        operation = OperationRequest(
            operation="query",
            resource="Offer",
            id=1,
            select=SelectionNode(fields=["id"], relations={"product": SelectionNode(fields=["name"])}),
        )
        result = await resolver.resolve(operation, anonymous)
        assert result == {"id": 1, "product": {"name": "Red Shoe"}}
        assert ("fetch_one", "Product") in backend.calls

    async def test_null_reference_resolves_to_none(self, resolver, anonymous):
        operation = OperationRequest(
            operation="query",
            resource="Offer",
            id=7,
            select=SelectionNode(fields=["id"], relations={"product": SelectionNode()}),
        )
        assert await resolver.resolve(operation, anonymous) == {"id": 7, "product": None}

    async def test_many_relation_is_a_nested_connection(self, resolver, anonymous):
        operation = OperationRequest(
            operation="query",
            resource="Product",
            id=1,
            select=SelectionNode(
                fields=["id"],
                relations={"offers": SelectionNode(fields=["id", "price"], args={"first": 1})},
            ),
        )
        result = await resolver.resolve(operation, anonymous)
        offers = result["offers"]
        assert offers["totalCount"] == 2
        assert _ids(offers) == [1]
        assert offers["pageInfo"]["hasNextPage"] is True


class TestBookScenario:
    async def test_undeclared_update_is_rejected_before_persistence(self, resolver, backend, reader):
        operation = OperationRequest(operation="update", resource="Book", id=1, input={"title": "X"})
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(operation, reader)
        assert exc_info.value.argument == "operation"
        assert backend.calls == []

    async def test_fields_outside_groups_are_omitted(self, resolver, reader):
        operation = OperationRequest(
            operation="query",
            resource="Book",
            args={"author": "Herbert"},
            select=SelectionNode(fields=["id", "title", "notes"]),
        )
        result = await resolver.resolve(operation, reader)
        assert [edge["node"] for edge in result["edges"]] == [{"title": "Dune"}]

    async def test_empty_selection_returns_eligible_fields(self, resolver, reader):
        operation = OperationRequest(operation="query", resource="Book", id=2)
        assert await resolver.resolve(operation, reader) == {
            "title": "Emma",
            "author": "Austen",
            "isbn": "222",
        }

    async def test_base_rule_denies_anonymous_query(self, resolver, backend, anonymous):
        operation = OperationRequest(operation="query", resource="Book")
        with pytest.raises(AuthorizationError):
            await resolver.resolve(operation, anonymous)
        assert backend.calls == []

    async def test_create_override_excludes_base_rule(self, resolver, backend):
        # Anonymous admin: the base rule (user.id != null) would deny.
        principal = Principal(roles=("ROLE_ADMIN",))
        operation = OperationRequest(
            operation="create",
            resource="Book",
            input={"title": "Dune 2", "author": "Herbert", "isbn": "333"},
        )
        result = await resolver.resolve(operation, principal)
        assert result == {"title": "Dune 2", "author": "Herbert", "isbn": None}
        assert backend.data["Book"][-1]["isbn"] is None

    async def test_create_denied_with_override_message(self, resolver, backend, reader):
        operation = OperationRequest(operation="create", resource="Book", input={"title": "X"})
        with pytest.raises(AuthorizationError) as exc_info:
            await resolver.resolve(operation, reader)
        assert str(exc_info.value) == "Only admins may add books."
        assert backend.calls == []


class TestItemAccess:
    async def test_owned_item(self, resolver, reader):
        operation = OperationRequest(operation="query", resource="Note", id=1)
        assert await resolver.resolve(operation, reader) == {"id": 1, "owner_id": 7, "body": "mine"}

    async def test_foreign_item_is_denied(self, resolver, reader):
        operation = OperationRequest(operation="query", resource="Note", id=2)
        with pytest.raises(AuthorizationError) as exc_info:
            await resolver.resolve(operation, reader)
        assert str(exc_info.value) == "Not your note."

    async def test_missing_item_looks_like_a_denial(self, resolver, reader):
        operation = OperationRequest(operation="query", resource="Note", id=99)
        with pytest.raises(AuthorizationError) as exc_info:
            await resolver.resolve(operation, reader)
        assert str(exc_info.value) == "Not your note."

    async def test_denied_item_fails_the_whole_collection(self, resolver, reader):
        operation = OperationRequest(operation="query", resource="Note")
        with pytest.raises(AuthorizationError):
            await resolver.resolve(operation, reader)

    async def test_update_checks_target_before_mutating(self, resolver, backend, reader):
        operation = OperationRequest(operation="update", resource="Note", id=2, input={"body": "x"})
        with pytest.raises(AuthorizationError):
            await resolver.resolve(operation, reader)
        assert backend.calls == [("fetch_one", "Note")]

    async def test_update_override_lets_admin_through(self, resolver, admin):
        operation = OperationRequest(operation="update", resource="Note", id=2, input={"body": "edited"})
        result = await resolver.resolve(operation, admin)
        assert result == {"id": 2, "owner_id": 8, "body": "edited"}

    async def test_delete_uses_base_rule(self, resolver, backend, reader, admin):
        denied = OperationRequest(operation="delete", resource="Note", id=2)
        with pytest.raises(AuthorizationError):
            await resolver.resolve(denied, admin)

        allowed = OperationRequest(operation="delete", resource="Note", id=1)
        assert await resolver.resolve(allowed, reader) == {"id": 1, "owner_id": 7, "body": "mine"}
        assert [row["id"] for row in backend.data["Note"]] == [2]

    async def test_create_override_without_object(self, resolver, reader):
        operation = OperationRequest(
            operation="create", resource="Note", input={"owner_id": 7, "body": "new"}
        )
        result = await resolver.resolve(operation, reader)
        assert result == {"id": 3, "owner_id": 7, "body": "new"}


class TestMutations:
    async def test_update_without_declared_operations(self, resolver, anonymous):
        operation = OperationRequest(
            operation="update",
            resource="Product",
            id=1,
            input={"color": "purple"},
            select=SelectionNode(fields=["id", "color"]),
        )
        assert await resolver.resolve(operation, anonymous) == {"id": 1, "color": "purple"}

    async def test_missing_update_target_without_rule(self, resolver, backend, anonymous):
        operation = OperationRequest(operation="update", resource="Product", id=99, input={"color": "x"})
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(operation, anonymous)
        assert exc_info.value.argument == "id"
        assert ("mutate", "Product") not in backend.calls

    async def test_missing_item_without_rule_is_null(self, resolver, anonymous):
        operation = OperationRequest(operation="query", resource="Product", id=99)
        assert await resolver.resolve(operation, anonymous) is None

    @pytest.mark.parametrize("data, argument", [
        ({"color": 5}, "input.color"),
        ({"name": None}, "input.name"),
        ({"offers": []}, "input.offers"),
        ({"colour": "red"}, "input.colour"),
    ])
    async def test_invalid_input(self, resolver, backend, anonymous, data, argument):
        operation = OperationRequest(operation="update", resource="Product", id=1, input=data)
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(operation, anonymous)
        assert exc_info.value.argument == argument
        assert backend.calls == []

    async def test_update_requires_id(self, resolver, anonymous):
        operation = OperationRequest(operation="update", resource="Product", input={"color": "x"})
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(operation, anonymous)
        assert exc_info.value.argument == "id"


class TestRequestValidation:
    async def test_unknown_selected_field(self, resolver, backend, anonymous):
        operation = OperationRequest(
            operation="query", resource="Offer", select=SelectionNode(fields=["id", "nope"])
        )
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(operation, anonymous)
        assert exc_info.value.argument == "select.nope"
        assert backend.calls == []

    async def test_bad_nested_argument_fails_before_fetch(self, resolver, backend, anonymous):
        operation = OperationRequest(
            operation="query",
            resource="Product",
            select=SelectionNode(relations={"offers": SelectionNode(args={"bogus": 1})}),
        )
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(operation, anonymous)
        assert exc_info.value.argument == "bogus"
        assert backend.calls == []

    async def test_unknown_resource(self, resolver, anonymous):
        with pytest.raises(ValidationError) as exc_info:
            await resolver.resolve(OperationRequest(operation="query", resource="Ghost"), anonymous)
        assert exc_info.value.argument == "resource"

    async def test_query_rejects_input(self, resolver, anonymous):
        operation = OperationRequest(operation="query", resource="Offer", input={"price": 1})
        with pytest.raises(ValidationError):
            await resolver.resolve(operation, anonymous)

    async def test_selection_depth_is_limited(self, registry, backend, anonymous):
        resolver = Resolver(registry, backend, max_depth=1)
        selection = SelectionNode(relations={
            "product": SelectionNode(relations={"offers": SelectionNode(relations={
                "product": SelectionNode(),
            })}),
        })
        operation = OperationRequest(operation="query", resource="Offer", select=selection)
        with pytest.raises(ValidationError):
            await resolver.resolve(operation, anonymous)


class TestBatch:
    async def test_failures_are_isolated(self, resolver, reader):
        operations = {
            "offers": OperationRequest(operation="query", resource="Offer", args={"first": 2}),
            "book": OperationRequest(operation="update", resource="Book", id=1, input={"title": "X"}),
        }
        data, errors = await resolver.resolve_many(operations, reader)

        assert _ids(data["offers"]) == [1, 2]
        assert data["book"] is None
        assert len(errors) == 1
        assert errors[0]["path"] == ["book"]
        assert errors[0]["type"] == "ValidationError"
        assert errors[0]["argument"] == "operation"

    async def test_unexpected_errors_stay_opaque(self, registry, backend, reader, caplog):
        class BrokenAssembler(ResponseAssembler):
            def plan(self, descriptor, selection, context):
                if descriptor.name == "Product":
                    raise KeyError("internal detail")
                return super().plan(descriptor, selection, context)

        resolver = Resolver(registry, backend, assembler=BrokenAssembler())
        operations = {
            "offers": OperationRequest(operation="query", resource="Offer", args={"first": 2}),
            "products": OperationRequest(operation="query", resource="Product"),
        }
        data, errors = await resolver.resolve_many(operations, reader)

        assert _ids(data["offers"]) == [1, 2]
        assert data["products"] is None
        assert errors == [{"message": OPAQUE_FAILURE_MESSAGE, "type": "PersistenceError", "path": ["products"]}]
        assert "internal detail" in caplog.text


class BrokenBackend:
    async def count(self, resource, filters):
        raise RuntimeError("connection refused")

    async def fetch_window(self, resource, filters, ordering, window):
        raise RuntimeError("connection refused")

    async def fetch_one(self, resource, id):
        raise RuntimeError("connection refused")

    async def mutate(self, resource, operation, data):
        raise RuntimeError("connection refused")


class TestPersistenceFailures:
    async def test_backend_errors_are_wrapped(self, registry, anonymous):
        resolver = Resolver(registry, BrokenBackend())
        with pytest.raises(PersistenceError) as exc_info:
            await resolver.resolve(OperationRequest(operation="query", resource="Offer"), anonymous)
        assert exc_info.value.resource == "Offer"
        assert exc_info.value.to_payload()["message"] == OPAQUE_FAILURE_MESSAGE

    async def test_first_failure_cancels_siblings(self):
        cancelled = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        async def fail():
            await asyncio.sleep(0)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await gather_or_cancel(slow(), fail())
        assert cancelled.is_set()
