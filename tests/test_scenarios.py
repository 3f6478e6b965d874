"""End-to-end flows across several actors."""
from __future__ import annotations


async def test_assignment_locks_out_creator_and_other_agents(client, make_actor, create_ticket):
    user_a = await make_actor("user_a")
    agent_b = await make_actor("agent_b", "agent")
    agent_c = await make_actor("agent_c", "agent")

    t = await create_ticket(user_a)
    assert t["status"] == "open"

    r = await client.put(
        f"/api/tickets/{t['id']}",
        headers=agent_b.headers,
        json={"assignedTo": agent_b.id, "status": "in progress"},
    )
    assert r.status_code == 200
    assert r.json()["assignee_id"] == agent_b.id
    assert r.json()["status"] == "in progress"

    r = await client.put(f"/api/tickets/{t['id']}", headers=user_a.headers, json={"priority": "low"})
    assert r.status_code == 403

    r = await client.put(f"/api/tickets/{t['id']}", headers=agent_c.headers, json={"assignedTo": agent_c.id})
    assert r.status_code == 403

    r = await client.get(f"/api/tickets/{t['id']}", headers=user_a.headers)
    data = r.json()
    assert data["priority"] == "medium"
    assert data["assignee_id"] == agent_b.id

    # агент-виконавець і далі керує тікетом
    r = await client.put(f"/api/tickets/{t['id']}", headers=agent_b.headers, json={"status": "closed"})
    assert r.status_code == 200


async def test_promotion_takes_effect_on_next_request(client, make_actor, create_ticket):
    admin = await make_actor("root", "admin")
    u = await make_actor("user_u")
    other = await make_actor("other")
    foreign = await create_ticket(other)

    r = await client.get("/api/tickets", headers=u.headers)
    assert r.json() == []
    assert (await client.get(f"/api/tickets/{foreign['id']}", headers=u.headers)).status_code == 403

    r = await client.put(f"/api/users/{u.id}/role", headers=admin.headers, json={"role": "agent"})
    assert r.status_code == 200

    # той самий токен, роль уже з директорії
    r = await client.get("/api/tickets", headers=u.headers)
    assert [t["id"] for t in r.json()] == [foreign["id"]]
    r = await client.put(f"/api/tickets/{foreign['id']}", headers=u.headers, json={"assigned_to": u.id})
    assert r.status_code == 200


async def test_reopen_closed_ticket(client, make_actor, create_ticket):
    user_a = await make_actor("user_a")
    agent_b = await make_actor("agent_b", "agent")
    t = await create_ticket(user_a)

    await client.put(f"/api/tickets/{t['id']}", headers=agent_b.headers, json={"assigned_to": agent_b.id, "status": "closed"})
    r = await client.put(f"/api/tickets/{t['id']}", headers=agent_b.headers, json={"status": "open"})
    assert r.status_code == 200
    assert r.json()["status"] == "open"

    # знову open -> автор може редагувати текст
    r = await client.put(f"/api/tickets/{t['id']}", headers=user_a.headers, json={"description": "Happened again"})
    assert r.status_code == 200
