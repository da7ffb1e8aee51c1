# tests/test_chat.py
from ticketdesk.backend.app.models import ChatCanalMiembro, ChatMensaje

from conftest import auth_headers

BASE = "/api/v1/chat"


def _canal(client, headers, nombre="Soporte General", miembros=()):
    r = client.post(
        f"{BASE}/canales", json={"nombre": nombre, "miembros": list(miembros)}, headers=headers
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_create_slugifies_and_makes_creator_admin(client, admin, admin_headers, worker):
    canal = _canal(client, admin_headers, miembros=[worker.id, admin.id])
    assert canal["nombre"] == "soporte-general"
    roles = {m["user_id"]: m["rol"] for m in canal["miembros"]}
    assert roles == {admin.id: "admin", worker.id: "miembro"}


def test_duplicate_channel_name_conflicts(client, admin_headers):
    _canal(client, admin_headers, nombre="Redes")
    r = client.post(f"{BASE}/canales", json={"nombre": "redes"}, headers=admin_headers)
    assert r.status_code == 409
    assert r.json() == {"error": "Ya existe un canal con ese nombre."}


def test_list_only_my_channels(client, admin_headers, worker_headers, worker):
    _canal(client, admin_headers, nombre="Con Luis", miembros=[worker.id])
    _canal(client, admin_headers, nombre="Solo Admin")

    nombres = [c["nombre"] for c in client.get(f"{BASE}/canales", headers=worker_headers).json()]
    assert nombres == ["con-luis"]


def test_update_replaces_members_but_keeps_caller(
    client, admin, admin_headers, worker, operators, db
):
    canal = _canal(client, admin_headers, miembros=[worker.id])
    r = client.put(
        f"{BASE}/canales/{canal['id']}",
        json={"nombre": "Renombrado", "miembros": [operators[0].id]},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert r.json()["nombre"] == "renombrado"
    assert sorted(m["user_id"] for m in r.json()["miembros"]) == sorted([admin.id, operators[0].id])


def test_update_requires_admin(client, admin_headers, worker_headers, worker):
    canal = _canal(client, admin_headers, miembros=[worker.id])
    r = client.put(
        f"{BASE}/canales/{canal['id']}", json={"nombre": "x"}, headers=worker_headers
    )
    assert r.status_code == 403


def test_add_members_is_idempotent(client, admin, admin_headers, worker, db):
    canal = _canal(client, admin_headers)
    url = f"{BASE}/canales/{canal['id']}/miembros"
    assert client.post(url, json={"miembros": [worker.id]}, headers=admin_headers).status_code == 200
    assert client.post(url, json={"miembros": [worker.id, admin.id]}, headers=admin_headers).status_code == 200

    rows = db.query(ChatCanalMiembro).filter_by(canal_id=canal["id"]).all()
    assert sorted(r.user_id for r in rows) == sorted([admin.id, worker.id])
    assert {r.user_id: r.rol for r in rows}[admin.id] == "admin"

    r = client.post(url, json={"miembros": []}, headers=admin_headers)
    assert r.status_code == 400


def test_messages_members_only(client, admin_headers, worker_headers):
    canal = _canal(client, admin_headers)
    url = f"{BASE}/canales/{canal['id']}/mensajes"
    assert client.get(url, headers=worker_headers).status_code == 403
    r = client.post(url, data={"contenido": "hola"}, headers=worker_headers)
    assert r.status_code == 403


def test_post_list_with_ticket_reference(client, admin_headers, create_ticket):
    ticket = create_ticket()
    canal = _canal(client, admin_headers)
    url = f"{BASE}/canales/{canal['id']}/mensajes"

    assert client.post(url, data={"contenido": "  "}, headers=admin_headers).status_code == 400

    r = client.post(
        url,
        data={"contenido": "Mirad este", "ticket_ref_id": str(ticket["id"])},
        files=[("files", ("captura.png", b"\x89PNG", "image/png"))],
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    assert r.json()["ticket"]["numero"] == ticket["numero"]
    assert r.json()["archivos"][0]["nombre_original"] == "captura.png"

    mensajes = client.get(url, headers=admin_headers).json()
    assert [m["contenido"] for m in mensajes] == ["Mirad este"]
    assert mensajes[0]["usuario_nombre"] == "Ana Admin"
    assert mensajes[0]["ticket"]["asunto"] == "No enciende"


def test_edit_own_message_only(client, admin, admin_headers, worker, worker_headers):
    canal = _canal(client, admin_headers, miembros=[worker.id])
    msg = client.post(
        f"{BASE}/canales/{canal['id']}/mensajes", data={"contenido": "borrador"}, headers=worker_headers
    ).json()
    url = f"{BASE}/mensajes/{msg['id']}"

    assert client.patch(url, json={"contenido": "x"}, headers=admin_headers).status_code == 403
    assert client.patch(url, json={"contenido": ""}, headers=worker_headers).status_code == 400

    r = client.patch(url, json={"contenido": "definitivo"}, headers=worker_headers)
    assert r.json()["contenido"] == "definitivo"
    assert r.json()["editado"] is True


def test_pin_requires_boolean(client, admin_headers):
    canal = _canal(client, admin_headers)
    msg = client.post(
        f"{BASE}/canales/{canal['id']}/mensajes", data={"contenido": "fijar"}, headers=admin_headers
    ).json()
    url = f"{BASE}/mensajes/{msg['id']}/pin"

    assert client.patch(url, json={"anclado": "si"}, headers=admin_headers).status_code == 400
    r = client.patch(url, json={"anclado": True}, headers=admin_headers)
    assert r.json() == {"id": msg["id"], "anclado": True}


def test_delete_message_author_or_admin(client, admin_headers, worker, worker_headers, make_user, db):
    canal = _canal(client, admin_headers, miembros=[worker.id])
    msg = client.post(
        f"{BASE}/canales/{canal['id']}/mensajes", data={"contenido": "temporal"}, headers=worker_headers
    ).json()
    url = f"{BASE}/mensajes/{msg['id']}"

    other = make_user("ajeno@ticketdesk.es", "Ajeno")
    assert client.delete(url, headers=auth_headers(other)).status_code == 403
    assert client.delete(url, headers=admin_headers).json() == {"ok": True}
    assert db.query(ChatMensaje).count() == 0


def test_delete_channel_removes_attachments(client, admin_headers, chat_storage, db):
    canal = _canal(client, admin_headers)
    msg = client.post(
        f"{BASE}/canales/{canal['id']}/mensajes",
        data={"contenido": "adjunto"},
        files=[("files", ("log.txt", b"error 42", "text/plain"))],
        headers=admin_headers,
    ).json()
    archivo_id = msg["archivos"][0]["id"]
    r = client.get(f"/api/v1/recursos/chat/archivos/{archivo_id}/url", headers=admin_headers)
    assert client.get(r.json()["url"]).content == b"error 42"

    assert client.delete(f"{BASE}/canales/{canal['id']}", headers=admin_headers).status_code == 200
    assert not any(chat_storage.base.rglob("*.txt"))
