"""Tests for the generated FastAPI routes using an in-memory store."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import Response
from fastapi.testclient import TestClient

from docrest.api.app import create_app
from docrest.api.registry import RouteRegistry
from docrest.core.errors import PersistenceError
from docrest.db import InMemoryDocumentStore


def tag_show(response: Response) -> None:
    response.headers["x-middleware"] = "show"


def tag_create(response: Response) -> None:
    response.headers["x-created-by"] = "middleware"


@pytest.fixture
def seeded(in_memory_store: InMemoryDocumentStore) -> dict[str, str]:
    users = in_memory_store.collection("User")
    alice = asyncio.run(users.insert({"name": "Alice", "email": "a@example.com", "age": 30}))
    bob = asyncio.run(users.insert({"name": "Bob", "email": "b@example.com", "age": 25}))
    return {"alice": alice["_id"], "bob": bob["_id"]}


@pytest.fixture
def client(in_memory_store: InMemoryDocumentStore, seeded: dict[str, str]) -> Iterator[TestClient]:
    registry = RouteRegistry(in_memory_store)
    registry.add_routes(in_memory_store.collection("User"), "list show create update delete")
    registry.add_routes(
        in_memory_store.collection("Post"),
        ["list", "show", "create", "update", "delete"],
        middleware={"show": [tag_show], "create": [tag_create]},
        relationships="readers author",
    )
    with TestClient(create_app(in_memory_store, registry)) as test_client:
        yield test_client


def _create_post(client: TestClient, seeded: dict[str, str], **extra: Any) -> dict[str, Any]:
    body = {"title": "Test Post", "author": seeded["alice"], "readers": [seeded["bob"], seeded["alice"]], **extra}
    resp = client.post("/api/posts", json=body)
    assert resp.status_code == 201, resp.text
    result: dict[str, Any] = resp.json()
    return result


class TestAppRoutes:
    def test_root_lists_collections(self, client: TestClient) -> None:
        body = client.get("/").json()
        assert body["collections"]["users"]["href"] == "/api/users"
        assert {"name": "readers", "method": "GET", "path": "/api/posts/{post}/readers"} in body["collections"][
            "posts"
        ]["routes"]

    def test_liveness_returns_ok(self, client: TestClient) -> None:
        resp = client.get("/healthz/live")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_readiness_pings_store(self, client: TestClient) -> None:
        resp = client.get("/healthz/ready")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "ok",
            "database": "up",
            "store": "InMemoryDocumentStore",
            "collections": ["User", "Post"],
        }

    def test_readiness_degrades_when_store_is_down(
        self, client: TestClient, in_memory_store: InMemoryDocumentStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def down() -> bool:
            return False

        monkeypatch.setattr(in_memory_store, "ping", down)

        resp = client.get("/healthz/ready")

        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"
        assert resp.json()["database"] == "down"

    def test_health_aliases_liveness(self, client: TestClient) -> None:
        assert client.get("/health").json() == {"status": "ok"}


class TestList:
    def test_list_hides_invisible_fields_and_sets_total(self, client: TestClient) -> None:
        resp = client.get("/api/users")
        assert resp.status_code == 200
        assert resp.headers["total"] == "2"
        for user in resp.json():
            assert "email" not in user
            assert "__v" not in user
            assert user["role"] == "member"

    def test_total_counts_before_paging(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"limit": 1, "skip": 1, "sort": "name"})
        assert resp.headers["total"] == "2"
        assert [user["name"] for user in resp.json()] == ["Bob"]

    def test_sort_descending(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"sort": "-age"})
        assert [user["name"] for user in resp.json()] == ["Alice", "Bob"]

    def test_filters_cast_values(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"age": "25"})
        assert [user["name"] for user in resp.json()] == ["Bob"]
        assert resp.headers["total"] == "1"

    def test_hidden_fields_cannot_be_filtered(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"email": "a@example.com"})
        assert resp.headers["total"] == "2"

    def test_uncastable_filter_is_rejected(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"age": "old"})
        assert resp.status_code == 400
        assert resp.json()["status"] == "invalid"

    def test_select_limits_fields(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"select": "name,email"})
        assert all(set(user) == {"_id", "name"} for user in resp.json())

    def test_malformed_paging_falls_back(self, client: TestClient) -> None:
        resp = client.get("/api/users", params={"skip": "x", "limit": "y"})
        assert len(resp.json()) == 2

    def test_middleware_only_runs_on_its_route(self, client: TestClient) -> None:
        resp = client.get("/api/posts")
        assert "x-middleware" not in resp.headers

    def test_filter_on_reference_array_matches_contained_ids(self, client: TestClient, seeded: dict[str, str]) -> None:
        client.post("/api/posts", json={"title": "A", "readers": [seeded["alice"]]})
        client.post("/api/posts", json={"title": "B", "readers": [seeded["bob"]]})
        client.post("/api/posts", json={"title": "C", "readers": [seeded["bob"], seeded["alice"]]})

        resp = client.get("/api/posts", params={"readers": seeded["alice"], "sort": "title"})

        assert resp.headers["total"] == "2"
        assert [post["title"] for post in resp.json()] == ["A", "C"]

    def test_list_populates_without_hidden_fields(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded, secret="hush")
        posts = client.get("/api/posts", params={"populate": "readers,author"}).json()
        assert [reader["name"] for reader in posts[0]["readers"]] == ["Bob", "Alice"]
        assert all("email" not in reader for reader in posts[0]["readers"])
        assert "email" not in posts[0]["author"]
        assert "secret" not in posts[0]


class TestCreateAndShow:
    def test_create_returns_created_record(self, client: TestClient, seeded: dict[str, str]) -> None:
        post = _create_post(client, seeded, **{"revision": 42, "secret": "hush", "__v": 7})
        assert post["slug"] == "test-post"
        assert post["revision"] == 0
        assert post["published"] is False
        assert post["author"] == seeded["alice"]
        assert "secret" not in post
        assert "__v" not in post

    def test_create_middleware_runs_only_on_create(self, client: TestClient, seeded: dict[str, str]) -> None:
        resp = client.post("/api/posts", json={"title": "Hello"})
        assert resp.headers["x-created-by"] == "middleware"
        assert "x-created-by" not in client.get("/api/posts/hello").headers
        assert "x-created-by" not in client.post("/api/users", json={"name": "Carol"}).headers

    def test_create_then_show_round_trip(self, client: TestClient, seeded: dict[str, str]) -> None:
        created = _create_post(client, seeded)
        shown = client.get(f"/api/posts/{created['slug']}").json()
        assert shown == created

    def test_autokey_slugs_are_unique(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        assert _create_post(client, seeded)["slug"] == "test-post-2"

    def test_create_flattens_populated_references(self, client: TestClient, seeded: dict[str, str]) -> None:
        post = _create_post(client, seeded, author={"_id": seeded["bob"], "name": "Bob"})
        assert post["author"] == seeded["bob"]

    def test_create_rejects_invalid_payload(self, client: TestClient) -> None:
        resp = client.post("/api/users", json={"age": 3})
        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "invalid"
        assert "name" in body["errors"]

    def test_create_requires_json_object(self, client: TestClient) -> None:
        resp = client.post("/api/users", json=["Alice"])
        assert resp.status_code == 400
        assert resp.json() == {"status": "invalid", "message": "Request body must be a JSON object"}

    def test_show_by_alternate_key_runs_middleware(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        resp = client.get("/api/posts/test-post")
        assert resp.status_code == 200
        assert resp.headers["x-middleware"] == "show"
        assert resp.json()["title"] == "Test Post"

    def test_show_missing_record(self, client: TestClient) -> None:
        resp = client.get("/api/posts/nope")
        assert resp.status_code == 404
        assert resp.json() == {"status": "missing", "message": "Could not find post with nope"}
        assert resp.headers["x-middleware"] == "show"

    def test_show_populates_without_hidden_fields(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        post = client.get("/api/posts/test-post", params={"populate": "author,readers"}).json()
        assert post["author"] == {"_id": seeded["alice"], "name": "Alice", "role": "member", "age": 30}
        assert [reader["name"] for reader in post["readers"]] == ["Bob", "Alice"]
        assert all("email" not in reader for reader in post["readers"])

    def test_populate_ignores_unselected_fields(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        post = client.get("/api/posts/test-post", params={"populate": "author", "select": "title"}).json()
        assert post == {"_id": post["_id"], "title": "Test Post"}


class TestRelationships:
    def test_related_records_follow_stored_order(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        resp = client.get("/api/posts/test-post/readers")
        assert resp.status_code == 200
        assert resp.headers["total"] == "2"
        assert [user["name"] for user in resp.json()] == ["Bob", "Alice"]

    def test_related_records_sorted_on_request(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        resp = client.get("/api/posts/test-post/readers", params={"sort": "name"})
        assert [user["name"] for user in resp.json()] == ["Alice", "Bob"]

    def test_related_records_filtered_and_paged(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        filtered = client.get("/api/posts/test-post/readers", params={"name": "Alice"})
        assert filtered.headers["total"] == "1"
        assert [user["_id"] for user in filtered.json()] == [seeded["alice"]]

        paged = client.get("/api/posts/test-post/readers", params={"skip": 1})
        assert paged.headers["total"] == "2"
        assert [user["name"] for user in paged.json()] == ["Alice"]

    def test_single_reference_relationship(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        resp = client.get("/api/posts/test-post/author")
        assert [user["name"] for user in resp.json()] == ["Alice"]
        assert all("email" not in user for user in resp.json())

    def test_missing_parent(self, client: TestClient) -> None:
        resp = client.get("/api/posts/nope/readers")
        assert resp.status_code == 404
        assert resp.json()["status"] == "missing"


class TestUpdateAndDelete:
    def test_put_updates_and_advances_version(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded, secret="hush")
        resp = client.put("/api/posts/test-post", json={"title": "Renamed", "published": True, "revision": 0})
        assert resp.status_code == 200
        post = resp.json()
        assert post["title"] == "Renamed"
        assert post["published"] is True
        assert post["slug"] == "test-post"
        assert post["revision"] == 1
        assert "secret" not in post

    def test_stale_version_is_rejected(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        client.patch("/api/posts/test-post", json={"title": "Renamed", "revision": 0})

        resp = client.patch("/api/posts/test-post", json={"title": "Stale", "revision": 0})

        assert resp.status_code == 409
        assert resp.json()["status"] == "conflict"
        assert client.get("/api/posts/test-post").json()["title"] == "Renamed"

    def test_uneditable_fields_are_ignored(self, client: TestClient, seeded: dict[str, str]) -> None:
        resp = client.patch(f"/api/users/{seeded['alice']}", json={"name": "Alicia", "role": "admin"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "Alicia"
        assert resp.json()["role"] == "member"
        assert "email" not in resp.json()

    def test_update_rejects_wrong_types(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        resp = client.patch("/api/posts/test-post", json={"published": "yes"})
        assert resp.status_code == 400
        assert set(resp.json()["errors"]) == {"published"}

    def test_update_missing_record(self, client: TestClient) -> None:
        resp = client.put("/api/users/nope", json={"name": "x"})
        assert resp.status_code == 404
        assert resp.json() == {"status": "missing", "message": "Could not find user with nope"}

    def test_delete_missing_record(self, client: TestClient) -> None:
        resp = client.delete("/api/posts/nope")
        assert resp.status_code == 404
        assert resp.json() == {"status": "missing", "message": "Could not find post with nope"}

    def test_delete_fires_hooks_and_removes(
        self, client: TestClient, in_memory_store: InMemoryDocumentStore, seeded: dict[str, str]
    ) -> None:
        removed: list[str] = []
        in_memory_store.collection("Post").add_hook("post_remove", lambda document: removed.append(document["slug"]))
        _create_post(client, seeded)

        resp = client.delete("/api/posts/test-post")

        assert resp.status_code == 200
        assert resp.json() == {"message": "Successfully deleted posts"}
        assert removed == ["test-post"]
        assert client.get("/api/posts/test-post").status_code == 404

    def test_deleted_references_drop_out_of_populated_arrays(self, client: TestClient, seeded: dict[str, str]) -> None:
        _create_post(client, seeded)
        client.delete(f"/api/users/{seeded['bob']}")
        post = client.get("/api/posts/test-post", params={"populate": "readers"}).json()
        assert [reader["name"] for reader in post["readers"]] == ["Alice"]


class TestPersistenceErrors:
    def test_store_failure_returns_500(
        self, client: TestClient, in_memory_store: InMemoryDocumentStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        async def broken_count(criteria: dict[str, Any]) -> int:
            raise PersistenceError("disk on fire")

        monkeypatch.setattr(in_memory_store.collection("User"), "count", broken_count)

        resp = client.get("/api/users")

        assert resp.status_code == 500
        assert resp.json() == {"status": "error", "message": "Internal persistence error"}
