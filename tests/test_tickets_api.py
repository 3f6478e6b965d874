from __future__ import annotations

import pytest
from sqlalchemy import func, select

from ticketdesk.core.errors import ConflictError
from ticketdesk.db.models import Comment, PriorityEnum as Priority, User
from ticketdesk.schemas.tickets import TicketUpdate
from ticketdesk.services import tickets as svc


class TestTicketCreate:
    async def test_create_forces_open_and_unassigned(self, client, make_actor):
        alice = await make_actor("alice")
        agent = await make_actor("bob", "agent")

        r = await client.post(
            "/api/tickets",
            headers=alice.headers,
            json={
                "title": "  VPN broken  ",
                "description": "Cannot connect since morning",
                "status": "closed",
                "assigned_to": agent.id,
                "assignedTo": agent.id,
                "creator_id": agent.id,
            },
        )
        assert r.status_code == 201, r.text
        data = r.json()
        assert data["title"] == "VPN broken"
        assert data["status"] == "open"
        assert data["priority"] == "medium"
        assert data["assignee_id"] is None
        assert data["assignee"] is None
        assert data["creator_id"] == alice.id
        assert data["creator"] == {"id": alice.id, "username": "alice", "email": "alice@example.com"}
        assert data["version"] == 1

    async def test_create_with_priority(self, create_ticket, make_actor):
        alice = await make_actor("alice")
        t = await create_ticket(alice, priority="high")
        assert t["priority"] == "high"

    @pytest.mark.parametrize(
        "body",
        [
            {"title": "   ", "description": "x"},
            {"title": "x", "description": ""},
            {"description": "no title"},
            {"title": "x", "description": "y", "priority": "urgent"},
        ],
    )
    async def test_create_validation(self, client, make_actor, body):
        alice = await make_actor("alice")
        r = await client.post("/api/tickets", headers=alice.headers, json=body)
        assert r.status_code == 400
        assert r.json()["errors"]

    async def test_create_requires_token(self, client):
        r = await client.post("/api/tickets", json={"title": "a", "description": "b"})
        assert r.status_code == 401
        assert r.json()["detail"] == "No token, authorization denied"


class TestTicketRead:
    async def test_missing_ticket_is_404(self, client, make_actor):
        admin = await make_actor("root", "admin")
        r = await client.get("/api/tickets/999", headers=admin.headers)
        assert r.status_code == 404

    async def test_other_users_ticket_is_403(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        mallory = await make_actor("mallory")
        t = await create_ticket(alice)

        r = await client.get(f"/api/tickets/{t['id']}", headers=mallory.headers)
        assert r.status_code == 403
        assert r.json()["detail"] == "User not authorized to view this ticket"

    async def test_hidden_ticket_is_404_when_configured(self, client, app, make_actor, create_ticket):
        app.state.settings.hide_forbidden_tickets = True
        alice = await make_actor("alice")
        mallory = await make_actor("mallory")
        t = await create_ticket(alice)

        r = await client.get(f"/api/tickets/{t['id']}", headers=mallory.headers)
        assert r.status_code == 404
        r = await client.delete(f"/api/tickets/{t['id']}", headers=mallory.headers)
        assert r.status_code == 404

    async def test_agent_cannot_see_ticket_of_another_agent(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        b = await make_actor("agent_b", "agent")
        c = await make_actor("agent_c", "agent")
        t = await create_ticket(alice)

        r = await client.put(f"/api/tickets/{t['id']}", headers=b.headers, json={"assigned_to": b.id})
        assert r.status_code == 200

        assert (await client.get(f"/api/tickets/{t['id']}", headers=b.headers)).status_code == 200
        assert (await client.get(f"/api/tickets/{t['id']}", headers=c.headers)).status_code == 403


class TestTicketList:
    async def test_visibility_per_role(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        carol = await make_actor("carol")
        agent = await make_actor("agent_b", "agent")
        other_agent = await make_actor("agent_c", "agent")
        admin = await make_actor("root", "admin")

        t_alice = await create_ticket(alice, title="alice 1")
        t_carol = await create_ticket(carol, title="carol 1")
        t_agent_own = await create_ticket(agent, title="agent own")
        t_taken = await create_ticket(carol, title="taken by c")
        r = await client.put(
            f"/api/tickets/{t_taken['id']}", headers=other_agent.headers, json={"assigned_to": other_agent.id}
        )
        assert r.status_code == 200

        async def ids(actor):
            r = await client.get("/api/tickets", headers=actor.headers)
            assert r.status_code == 200
            return {t["id"] for t in r.json()}

        assert await ids(alice) == {t_alice["id"]}
        assert await ids(carol) == {t_carol["id"], t_taken["id"]}
        assert await ids(agent) == {t_alice["id"], t_carol["id"], t_agent_own["id"]}
        assert await ids(other_agent) == {t_alice["id"], t_carol["id"], t_agent_own["id"], t_taken["id"]}
        assert await ids(admin) == {t_alice["id"], t_carol["id"], t_agent_own["id"], t_taken["id"]}

    async def test_newest_first(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        first = await create_ticket(alice, title="first")
        second = await create_ticket(alice, title="second")
        third = await create_ticket(alice, title="third")

        r = await client.get("/api/tickets", headers=alice.headers)
        assert [t["id"] for t in r.json()] == [third["id"], second["id"], first["id"]]

    async def test_filters(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        carol = await make_actor("carol")
        agent = await make_actor("agent_b", "agent")
        admin = await make_actor("root", "admin")

        low = await create_ticket(alice, priority="low")
        high = await create_ticket(carol, priority="high")
        await client.put(
            f"/api/tickets/{high['id']}",
            headers=agent.headers,
            json={"assigned_to": agent.id, "status": "in progress"},
        )

        async def ids(**params):
            r = await client.get("/api/tickets", headers=admin.headers, params=params)
            assert r.status_code == 200, r.text
            return [t["id"] for t in r.json()]

        assert await ids(priority="low") == [low["id"]]
        assert await ids(status="in progress") == [high["id"]]
        assert await ids(status="open") == [low["id"]]
        assert await ids(assignedTo=agent.id) == [high["id"]]
        assert await ids(createdBy=alice.id) == [low["id"]]
        assert await ids(createdBy=alice.id, priority="high") == []

    async def test_filters_do_not_widen_visibility(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        carol = await make_actor("carol")
        await create_ticket(carol)

        r = await client.get("/api/tickets", headers=alice.headers, params={"createdBy": carol.id})
        assert r.json() == []

    async def test_invalid_status_filter_is_400(self, client, make_actor):
        alice = await make_actor("alice")
        r = await client.get("/api/tickets", headers=alice.headers, params={"status": "pending"})
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "status"


class TestTicketUpdate:
    async def test_partial_update_only_touches_priority(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        t = await create_ticket(alice)

        r = await client.put(f"/api/tickets/{t['id']}", headers=alice.headers, json={"priority": "high"})
        assert r.status_code == 200, r.text
        data = r.json()
        assert data["priority"] == "high"
        assert data["updated_at"] != t["updated_at"]
        assert data["version"] == t["version"] + 1
        for key in ("title", "description", "status", "assignee_id", "created_at", "creator_id"):
            assert data[key] == t[key]

    async def test_unknown_status_rejected(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)

        r = await client.put(f"/api/tickets/{t['id']}", headers=admin.headers, json={"status": "done"})
        assert r.status_code == 400
        r = await client.get(f"/api/tickets/{t['id']}", headers=admin.headers)
        assert r.json()["status"] == "open"

    async def test_status_transitions_are_unrestricted(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)

        for status in ("closed", "open", "in progress", "closed"):
            r = await client.put(f"/api/tickets/{t['id']}", headers=admin.headers, json={"status": status})
            assert r.status_code == 200
            assert r.json()["status"] == status

    async def test_user_cannot_change_status_or_assignee(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        t = await create_ticket(alice)

        for body in ({"status": "closed"}, {"assigned_to": alice.id}, {"title": "x", "status": "closed"}):
            r = await client.put(f"/api/tickets/{t['id']}", headers=alice.headers, json=body)
            assert r.status_code == 403
            assert r.json()["detail"] == "User cannot change status or assignment."

        r = await client.get(f"/api/tickets/{t['id']}", headers=alice.headers)
        assert r.json()["title"] == t["title"]

    async def test_user_edits_title_and_description_while_open(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        t = await create_ticket(alice)

        r = await client.put(
            f"/api/tickets/{t['id']}",
            headers=alice.headers,
            json={"title": "Printer fixed?", "description": "Still jams", "priority": "low"},
        )
        assert r.status_code == 200
        data = r.json()
        assert (data["title"], data["description"], data["priority"]) == ("Printer fixed?", "Still jams", "low")

    async def test_agent_assigns_unassigned_ticket_to_self(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        agent = await make_actor("agent_b", "agent")
        t = await create_ticket(alice)

        r = await client.put(f"/api/tickets/{t['id']}", headers=agent.headers, json={"assignedTo": agent.id})
        assert r.status_code == 200
        data = r.json()
        assert data["assignee_id"] == agent.id
        assert data["assignee"]["username"] == "agent_b"

    async def test_agent_cannot_edit_title_of_foreign_ticket(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        agent = await make_actor("agent_b", "agent")
        t = await create_ticket(alice)

        r = await client.put(f"/api/tickets/{t['id']}", headers=agent.headers, json={"title": "mine now"})
        assert r.status_code == 403

    async def test_admin_clears_assignee(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        agent = await make_actor("agent_b", "agent")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)
        await client.put(f"/api/tickets/{t['id']}", headers=agent.headers, json={"assigned_to": agent.id})

        r = await client.put(f"/api/tickets/{t['id']}", headers=admin.headers, json={"assigned_to": None})
        assert r.status_code == 200
        assert r.json()["assignee_id"] is None

        await client.put(f"/api/tickets/{t['id']}", headers=agent.headers, json={"assigned_to": agent.id})
        r = await client.put(f"/api/tickets/{t['id']}", headers=admin.headers, json={"assignedTo": ""})
        assert r.status_code == 200
        assert r.json()["assignee"] is None

    async def test_admin_edits_everything(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        agent = await make_actor("agent_b", "agent")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)

        r = await client.put(
            f"/api/tickets/{t['id']}",
            headers=admin.headers,
            json={
                "title": "New title",
                "description": "New description",
                "status": "closed",
                "priority": "low",
                "assigned_to": agent.id,
            },
        )
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "closed"
        assert data["assignee_id"] == agent.id
        assert data["title"] == "New title"

    async def test_assign_to_missing_user_is_400(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)

        r = await client.put(f"/api/tickets/{t['id']}", headers=admin.headers, json={"assigned_to": 4242})
        assert r.status_code == 400
        assert r.json()["errors"][0]["field"] == "assigned_to"

    async def test_update_missing_ticket_is_404(self, client, make_actor):
        admin = await make_actor("root", "admin")
        r = await client.put("/api/tickets/77", headers=admin.headers, json={"priority": "low"})
        assert r.status_code == 404


class TestOptimisticConcurrency:
    async def test_if_match_with_current_version_succeeds(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        t = await create_ticket(alice)

        r = await client.put(
            f"/api/tickets/{t['id']}",
            headers={**alice.headers, "If-Match": f'"{t["version"]}"'},
            json={"priority": "low"},
        )
        assert r.status_code == 200
        assert r.json()["version"] == t["version"] + 1

    async def test_stale_if_match_is_409_and_nothing_written(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        t = await create_ticket(alice)
        await client.put(f"/api/tickets/{t['id']}", headers=alice.headers, json={"priority": "low"})

        r = await client.put(
            f"/api/tickets/{t['id']}",
            headers={**alice.headers, "If-Match": str(t["version"])},
            json={"priority": "high"},
        )
        assert r.status_code == 409
        r = await client.get(f"/api/tickets/{t['id']}", headers=alice.headers)
        assert r.json()["priority"] == "low"

    async def test_garbage_if_match_is_400(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        t = await create_ticket(alice)
        r = await client.put(
            f"/api/tickets/{t['id']}",
            headers={**alice.headers, "If-Match": "abc"},
            json={"priority": "low"},
        )
        assert r.status_code == 400

    async def test_without_if_match_last_writer_wins(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)

        await client.put(f"/api/tickets/{t['id']}", headers=alice.headers, json={"priority": "low"})
        r = await client.put(f"/api/tickets/{t['id']}", headers=admin.headers, json={"priority": "high"})
        assert r.status_code == 200
        assert r.json()["priority"] == "high"

    async def test_interleaved_writers_with_same_version(
        self, database, settings, monkeypatch, make_actor, create_ticket
    ):
        alice = await make_actor("alice")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)
        load_for_write = svc._load_for_write

        async def load_then_other_writer_commits(db, conf, actor, ticket_id):
            ticket = await load_for_write(db, conf, actor, ticket_id)
            monkeypatch.setattr(svc, "_load_for_write", load_for_write)
            # другий запис із тим самим If-Match встигає між load і commit
            async with database.session() as other:
                root = await other.get(User, admin.id)
                await svc.update_ticket(other, conf, root, ticket_id, TicketUpdate(priority="high"), expected_version=1)
            return ticket

        monkeypatch.setattr(svc, "_load_for_write", load_then_other_writer_commits)
        async with database.session() as db:
            me = await db.get(User, alice.id)
            with pytest.raises(ConflictError):
                await svc.update_ticket(db, settings, me, t["id"], TicketUpdate(priority="low"), expected_version=1)

        async with database.session() as db:
            stored = await svc.load_ticket(db, t["id"])
        assert stored.priority == Priority.high
        assert stored.version == 2


class TestTicketDelete:
    async def test_creator_deletes_and_comments_go_too(self, client, database, make_actor, create_ticket):
        alice = await make_actor("alice")
        agent = await make_actor("agent_b", "agent")
        t = await create_ticket(alice)
        keep = await create_ticket(alice, title="keep me")
        for actor in (alice, agent):
            r = await client.post(
                f"/api/tickets/{t['id']}/comments", headers=actor.headers, json={"text": "on it"}
            )
            assert r.status_code == 201
        await client.post(f"/api/tickets/{keep['id']}/comments", headers=alice.headers, json={"text": "other"})

        r = await client.delete(f"/api/tickets/{t['id']}", headers=alice.headers)
        assert r.status_code == 200
        assert r.json() == {"msg": "Ticket removed successfully"}

        assert (await client.get(f"/api/tickets/{t['id']}", headers=alice.headers)).status_code == 404
        async with database.session() as s:
            rows = (await s.execute(select(Comment.ticket_id, func.count()).group_by(Comment.ticket_id))).all()
        left = [tuple(row) for row in rows]
        assert left == [(keep["id"], 1)]

    async def test_admin_deletes_any_ticket(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        admin = await make_actor("root", "admin")
        t = await create_ticket(alice)
        r = await client.delete(f"/api/tickets/{t['id']}", headers=admin.headers)
        assert r.status_code == 200

    async def test_assignee_agent_and_other_users_cannot_delete(self, client, make_actor, create_ticket):
        alice = await make_actor("alice")
        carol = await make_actor("carol")
        agent = await make_actor("agent_b", "agent")
        t = await create_ticket(alice)
        await client.put(f"/api/tickets/{t['id']}", headers=agent.headers, json={"assigned_to": agent.id})

        for actor in (agent, carol):
            r = await client.delete(f"/api/tickets/{t['id']}", headers=actor.headers)
            assert r.status_code == 403
        assert (await client.get(f"/api/tickets/{t['id']}", headers=alice.headers)).status_code == 200

    async def test_delete_missing_ticket_is_404(self, client, make_actor):
        alice = await make_actor("alice")
        r = await client.delete("/api/tickets/12345", headers=alice.headers)
        assert r.status_code == 404
