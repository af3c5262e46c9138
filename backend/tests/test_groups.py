"""Tests for the study group endpoints and GroupService."""
import pytest
from fastapi import WebSocketDisconnect


def headers(token):
    return {"Authorization": f"Bearer {token}"}


class TestGroupService:
    def test_creator_is_member(self, services):
        group = services.groups.create("Algebra", created_by="u1", creator_name="Ada")
        assert group.member_count == 1
        assert services.groups.is_member_sync(group.id, "u1")

    def test_add_member_is_idempotent(self, services):
        group = services.groups.create("Algebra", created_by="u1", creator_name="Ada")
        assert services.groups.add_member(group.id, "u2", "Grace") is True
        assert services.groups.add_member(group.id, "u2", "Grace") is False
        assert {m.user_id for m in services.groups.members(group.id)} == {"u1", "u2"}

    def test_remove_member(self, services):
        group = services.groups.create("Algebra", created_by="u1", creator_name="Ada")
        services.groups.add_member(group.id, "u2", "Grace")
        assert services.groups.remove_member(group.id, "u2") is True
        assert services.groups.remove_member(group.id, "u2") is False

    def test_list_for_user(self, services):
        a = services.groups.create("A", created_by="u1", creator_name="Ada")
        services.groups.create("B", created_by="u2", creator_name="Grace")
        assert [g.id for g in services.groups.list_for_user("u1")] == [a.id]

    @pytest.mark.asyncio
    async def test_async_accessors(self, services):
        group = services.groups.create("A", created_by="u1", creator_name="Ada")
        assert (await services.groups.get_group(group.id)).name == "A"
        assert await services.groups.get_group("missing") is None
        assert await services.groups.is_member(group.id, "u1")
        assert not await services.groups.is_member(group.id, "u2")


class TestGroupEndpoints:
    def test_create_and_fetch(self, api_client, alice):
        response = api_client.post(
            "/groups",
            json={"name": "  Study Hall  ", "description": "Weekly review"},
            headers=headers(alice[1]),
        )
        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "Study Hall"
        assert created["created_by"] == "alice"
        assert created["member_count"] == 1

        fetched = api_client.get(f"/groups/{created['id']}", headers=headers(alice[1]))
        assert fetched.json()["id"] == created["id"]

    def test_create_rejects_blank_name(self, api_client, alice):
        response = api_client.post("/groups", json={"name": "   "}, headers=headers(alice[1]))
        assert response.status_code == 400

    def test_create_requires_session(self, api_client):
        assert api_client.post("/groups", json={"name": "x"}).status_code == 401

    def test_my_groups(self, api_client, group, bob, mallory):
        assert [g["id"] for g in api_client.get("/groups", headers=headers(bob[1])).json()] == [group.id]
        assert api_client.get("/groups", headers=headers(mallory[1])).json() == []

    def test_members_requires_membership(self, api_client, group, alice, mallory):
        members = api_client.get(f"/groups/{group.id}/members", headers=headers(alice[1]))
        assert {m["user_id"] for m in members.json()} == {"alice", "bob"}

        denied = api_client.get(f"/groups/{group.id}/members", headers=headers(mallory[1]))
        assert denied.status_code == 403

    def test_unknown_group(self, api_client, alice):
        assert api_client.get("/groups/missing", headers=headers(alice[1])).status_code == 404
        assert api_client.post("/groups/missing/join", headers=headers(alice[1])).status_code == 404

    def test_join_then_connect(self, api_client, group, mallory):
        joined = api_client.post(f"/groups/{group.id}/join", headers=headers(mallory[1]))
        assert joined.json()["changed"] is True
        assert joined.json()["notice"] == "Mallory joined the group"

        again = api_client.post(f"/groups/{group.id}/join", headers=headers(mallory[1]))
        assert again.json()["changed"] is False

        with api_client.websocket_connect(f"/ws/groups/{group.id}?token={mallory[1]}") as ws:
            ws.send_json({"type": "message", "content": "thanks for having me"})
            assert ws.receive_json()["type"] == "message"

    def test_join_announces_to_live_members(self, api_client, group, alice, mallory):
        with api_client.websocket_connect(f"/ws/groups/{group.id}?token={alice[1]}") as ws:
            api_client.post(f"/groups/{group.id}/join", headers=headers(mallory[1]))
            notice = ws.receive_json()
            assert notice["type"] == "system"
            assert notice["kind"] == "joined"
            assert notice["content"] == "Mallory joined the group"

    def test_leave_blocks_new_connections(self, api_client, group, bob):
        left = api_client.post(f"/groups/{group.id}/leave", headers=headers(bob[1]))
        assert left.json() == {
            "group_id": group.id,
            "user_id": "bob",
            "is_member": False,
            "changed": True,
            "notice": "Bob left the group",
        }

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(f"/ws/groups/{group.id}?token={bob[1]}") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4403
