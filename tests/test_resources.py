from __future__ import annotations

import asyncio

import pytest
from conftest import FakeTransport

from pytracker._api.resources import RESOURCES
from pytracker.cache.engine import EntityCache
from pytracker.cache.keys import build_key
from pytracker.exceptions import TrackerNetworkError
from pytracker.models import Comment, Task, Team, TeamMember
from pytracker.resources import ResourceClient


def _ok(data: object) -> dict[str, object]:
    return {"success": True, "data": data}


ADA = {"id": 1, "teamId": 7, "email": "ada@example.com", "name": "Ada", "role": "admin"}
GRACE = {"id": 2, "teamId": 7, "email": "grace@example.com", "name": "Grace", "role": "member"}


@pytest.fixture
def members(transport: FakeTransport, cache: EntityCache) -> ResourceClient[TeamMember]:
    return ResourceClient(RESOURCES["members"], TeamMember, transport, cache)


@pytest.fixture
def tasks(transport: FakeTransport, cache: EntityCache) -> ResourceClient[Task]:
    return ResourceClient(RESOURCES["tasks"], Task, transport, cache)


def test_keys(members: ResourceClient[TeamMember]) -> None:
    assert members.list_key(7) == build_key("members", teamId=7)
    assert members.list_key() == build_key("members")
    assert members.item_key(3) == build_key("members", id=3)


@pytest.mark.asyncio
async def test_list_is_loaded_with_scope(members: ResourceClient[TeamMember], transport: FakeTransport) -> None:
    transport.add("GET", "/member", _ok([ADA]))

    result = await members.list(7)

    assert [member.email for member in result] == ["ada@example.com"]
    assert transport.calls == [("GET", "/member", {"teamId": 7}, None)]


@pytest.mark.asyncio
async def test_create_member_end_to_end(
    members: ResourceClient[TeamMember],
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    release = asyncio.Event()

    async def create_response() -> dict[str, object]:
        await release.wait()
        return _ok({"id": 7, "name": "Core", "members": [ADA, GRACE]})

    transport.add("GET", "/member", _ok([ADA]), _ok([ADA, GRACE]))
    transport.add("POST", "/member/7", create_response)
    transport.add("GET", "/team", _ok([{"id": 7, "name": "Core"}]))
    teams = ResourceClient(RESOURCES["teams"], Team, transport, cache)
    await teams.list()
    await members.list(7)

    creating = asyncio.create_task(members.create({"teamId": 7, "email": "grace@example.com", "name": "Grace"}))
    await asyncio.sleep(0)

    optimistic = cache.get(members.list_key(7)).data
    assert [member.email for member in optimistic] == ["ada@example.com", "grace@example.com"]
    assert optimistic[-1].is_temporary

    release.set()
    assert await creating is None

    listed = cache.get(members.list_key(7))
    assert listed.invalidated
    assert cache.get(teams.list_key()).invalidated
    assert transport.calls[-1] == ("POST", "/member/7", {}, {"members": [{"teamId": 7, "email": "grace@example.com", "name": "Grace"}]})

    refreshed = await members.list(7)
    assert [member.id for member in refreshed] == [1, 2]
    assert transport.count("GET", "/member") == 2


@pytest.mark.asyncio
async def test_failed_create_rolls_back(
    members: ResourceClient[TeamMember],
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    error = TrackerNetworkError("POST /member/7 failed with HTTP 409", code="http_409", status_code=409)
    transport.add("GET", "/member", _ok([ADA]))
    transport.add("POST", "/member/7", error)
    await members.list(7)

    with pytest.raises(TrackerNetworkError) as excinfo:
        await members.create({"teamId": 7, "email": "ada@example.com"})

    assert excinfo.value is error
    entry = cache.get(members.list_key(7))
    assert [member.id for member in entry.data] == [1]
    assert not entry.invalidated


@pytest.mark.asyncio
async def test_create_without_loaded_list_skips_placeholder(
    tasks: ResourceClient[Task],
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    transport.add("POST", "/task", _ok({"id": 12, "name": "Ship", "listId": 4}))

    created = await tasks.create({"listId": 4, "name": "Ship"})

    assert created == Task(id=12, name="Ship", list_id=4)
    assert cache.get(tasks.list_key(4)).data is None


@pytest.mark.asyncio
async def test_invalid_placeholder_is_skipped(
    tasks: ResourceClient[Task],
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    transport.add("GET", "/task", _ok([]))
    transport.add("POST", "/task", _ok({"id": 12, "listId": 4, "dueDate": "2026-02-01T00:00:00Z"}))
    await tasks.list(4)

    await tasks.create({"listId": 4, "dueDate": "next week"})

    assert cache.get(tasks.list_key(4)).data == []


@pytest.mark.asyncio
async def test_update_is_optimistic_on_item_and_list(
    tasks: ResourceClient[Task],
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    release = asyncio.Event()

    async def update_response() -> dict[str, object]:
        await release.wait()
        return _ok({"id": 3, "name": "Renamed", "listId": 4})

    transport.add("GET", "/task", _ok([{"id": 3, "name": "Draft", "listId": 4}, {"id": 5, "name": "Other", "listId": 4}]))
    transport.add("GET", "/task/3", _ok({"id": 3, "name": "Draft", "listId": 4}))
    transport.add("PATCH", "/task/3", update_response)
    await tasks.list(4)
    await tasks.get(3)

    updating = asyncio.create_task(tasks.update(3, {"name": "Renamed", "listId": 4}))
    await asyncio.sleep(0)

    assert cache.get(tasks.item_key(3)).data.name == "Renamed"
    assert [task.name for task in cache.get(tasks.list_key(4)).data] == ["Renamed", "Other"]

    release.set()
    updated = await updating
    assert updated.name == "Renamed"
    assert cache.get(tasks.item_key(3)).invalidated
    assert cache.get(tasks.list_key(4)).invalidated
    assert transport.calls[-1] == ("PATCH", "/task/3", {}, {"name": "Renamed", "listId": 4})


@pytest.mark.asyncio
async def test_update_the_model_rejects_still_reaches_the_server(
    tasks: ResourceClient[Task],
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    release = asyncio.Event()

    async def update_response() -> dict[str, object]:
        await release.wait()
        return _ok({"id": 3, "name": "Draft", "listId": 4})

    transport.add("GET", "/task/3", _ok({"id": 3, "name": "Draft", "description": "Notes", "listId": 4}))
    transport.add("PATCH", "/task/3", update_response)
    await tasks.get(3)

    updating = asyncio.create_task(tasks.update(3, {"description": None}))
    await asyncio.sleep(0)

    pending = cache.get(tasks.item_key(3))
    assert pending.data.description == "Notes"
    assert not pending.invalidated

    release.set()
    updated = await updating
    assert updated.description == ""
    assert cache.get(tasks.item_key(3)).invalidated
    assert transport.calls[-1] == ("PATCH", "/task/3", {}, {"description": None})


@pytest.mark.asyncio
async def test_delete_rolls_back_on_failure(
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    comments = ResourceClient(RESOURCES["comments"], Comment, transport, cache)
    transport.add("GET", "/comment/comments", _ok([{"id": 1, "taskId": 5}, {"id": 2, "taskId": 5}]))
    transport.add(
        "DELETE",
        "/comment/comments/2",
        TrackerNetworkError("boom", code="http_500", status_code=500),
        _ok("comment 2 deleted"),
    )
    await comments.list(5)

    with pytest.raises(TrackerNetworkError):
        await comments.delete(2, scope=5)
    assert [comment.id for comment in cache.get(comments.list_key(5)).data] == [1, 2]

    await comments.delete(2, scope=5)
    entry = cache.get(comments.list_key(5))
    assert [comment.id for comment in entry.data] == [1]
    assert entry.invalidated


@pytest.mark.asyncio
async def test_use_list_without_scope_starts_disabled(
    members: ResourceClient[TeamMember],
    transport: FakeTransport,
) -> None:
    binding = members.use_list()

    assert not binding.enabled
    assert await binding.load() is None
    assert transport.calls == []


@pytest.mark.asyncio
async def test_use_create_binding(
    members: ResourceClient[TeamMember],
    transport: FakeTransport,
) -> None:
    transport.add("POST", "/member/7", _ok({"id": 7}))
    binding = members.use_create()

    assert await binding({"teamId": 7, "email": "x@example.com"}) is None
    assert binding.status.value == "success"


@pytest.mark.asyncio
async def test_use_item_and_use_delete(
    transport: FakeTransport,
    cache: EntityCache,
) -> None:
    comments = ResourceClient(RESOURCES["comments"], Comment, transport, cache)
    transport.add("GET", "/comment/comments/4", _ok({"id": 4, "taskId": 5, "description": "first"}))
    transport.add("GET", "/comment/comments", _ok([{"id": 4, "taskId": 5}]))
    transport.add("DELETE", "/comment/comments/4", _ok("comment 4 deleted"))

    item = comments.use_item(4)
    assert (await item.load()).description == "first"
    await comments.list(5)

    delete = comments.use_delete(scope=5)
    await delete(4)

    assert cache.get(comments.list_key(5)).data == []
    assert delete.status.value == "success"
    await cache.dispose()
    assert item.closed
