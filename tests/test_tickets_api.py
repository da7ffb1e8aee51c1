# tests/test_tickets_api.py
from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ticketdesk.backend.app import deps
from ticketdesk.backend.app.main import app
from ticketdesk.backend.app.models import (
    Ticket,
    TicketArchivo,
    TicketAsignacion,
    TicketHistorial,
    TicketHora,
)
from ticketdesk.backend.app.services.historial import HistorialRecorder

from conftest import FailingDeleteStorage, FailingPutStorage, auth_headers

PDF = ("informe.pdf", b"%PDF-1.4 informe", "application/pdf")


def historial(client, ticket_id, headers):
    r = client.get(f"/api/v1/tickets/{ticket_id}/historial", headers=headers)
    assert r.status_code == 200
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_requires_token(client):
    r = client.get("/api/v1/tickets/")
    assert r.status_code == 401
    assert r.json() == {"error": "No autorizado. Token requerido."}


def test_inactive_user_is_refused(client, make_user):
    inactive = make_user("baja@ticketdesk.es", "Baja", activo=False)
    r = client.get("/api/v1/tickets/", headers=auth_headers(inactive))
    assert r.status_code == 403


def test_create_defaults_to_pendiente_with_empty_lifecycle(client, admin_headers, create_ticket):
    ticket = create_ticket()
    assert ticket["estado"] == "Pendiente"
    assert ticket["prioridad"] == "Media"
    assert ticket["numero"] == 1
    assert ticket["created_at"] is not None
    assert ticket["started_at"] is None
    assert ticket["completed_at"] is None
    assert ticket["invoiced_at"] is None

    entries = historial(client, ticket["id"], admin_headers)
    assert [e["tipo"] for e in entries] == ["creacion"]
    assert entries[0]["descripcion"] == "Ticket #1 creado por Ana Admin"


def test_numbers_are_sequential(create_ticket):
    assert create_ticket()["numero"] == 1
    assert create_ticket(asunto="Otro")["numero"] == 2


def test_create_requires_company_and_subject(client, admin_headers, empresa):
    r = client.post("/api/v1/tickets/", json={"empresa_id": empresa.id}, headers=admin_headers)
    assert r.status_code == 400
    assert "detalles" in r.json()

    r = client.post(
        "/api/v1/tickets/", json={"empresa_id": 999, "asunto": "x"}, headers=admin_headers
    )
    assert r.status_code == 404


def test_create_with_unknown_operator_persists_nothing(client, admin_headers, empresa, db):
    r = client.post(
        "/api/v1/tickets/",
        json={"empresa_id": empresa.id, "asunto": "Sin red", "operarios": [9999]},
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert r.json() == {"error": "Operarios no encontrados: [9999]"}
    assert db.query(Ticket).count() == 0
    assert db.query(TicketHistorial).count() == 0


def test_create_with_unknown_device_is_404(client, admin_headers, empresa, db):
    r = client.post(
        "/api/v1/tickets/",
        json={"empresa_id": empresa.id, "asunto": "Sin red", "dispositivo_id": 4242},
        headers=admin_headers,
    )
    assert r.status_code == 404
    assert r.json() == {"error": "Dispositivo no encontrado"}
    assert db.query(Ticket).count() == 0


def test_create_with_closed_status_stamps_timestamp(create_ticket):
    ticket = create_ticket(estado="Completado")
    assert ticket["completed_at"] is not None


def test_create_with_operators_assigns_and_notifies(
    client, admin_headers, create_ticket, operators, mailer
):
    ticket = create_ticket(operarios=[operators[0].id, operators[1].id])

    detail = client.get(f"/api/v1/tickets/{ticket['id']}", headers=admin_headers).json()
    assert sorted(a["user_id"] for a in detail["asignaciones"]) == sorted(
        [operators[0].id, operators[1].id]
    )
    assert sorted(to for to, _ in mailer.sent) == ["op1@ticketdesk.es", "op2@ticketdesk.es"]
    assert [e["tipo"] for e in detail["historial"]] == ["creacion", "asignacion"]


def test_en_curso_twice_keeps_started_at(client, admin_headers, create_ticket, clock):
    ticket = create_ticket()
    url = f"/api/v1/tickets/{ticket['id']}"

    clock.advance(hours=1)
    first = client.put(url, json={"estado": "En curso"}, headers=admin_headers).json()
    assert first["started_at"] is not None

    clock.advance(hours=3)
    second = client.put(url, json={"estado": "En curso"}, headers=admin_headers).json()
    assert second["started_at"] == first["started_at"]

    tipos = [e["tipo"] for e in historial(client, ticket["id"], admin_headers)]
    assert tipos == ["creacion", "estado"]


def test_completed_then_invoiced_reanchors_elapsed(client, admin_headers, create_ticket, clock):
    ticket = create_ticket()
    url = f"/api/v1/tickets/{ticket['id']}"

    clock.advance(hours=2)
    r = client.put(url, json={"estado": "Completado"}, headers=admin_headers)
    assert r.status_code == 200
    completed_at = r.json()["completed_at"]

    clock.advance(hours=5)
    assert client.get(url, headers=admin_headers).json()["horas_transcurridas"] == 2.0

    clock.advance(hours=1)
    r = client.put(url, json={"estado": "Facturado"}, headers=admin_headers)
    assert r.json()["completed_at"] == completed_at
    assert r.json()["invoiced_at"] is not None

    clock.advance(hours=10)
    detail = client.get(url, headers=admin_headers).json()
    assert detail["horas_transcurridas"] == 8.0

    listed = client.get("/api/v1/tickets/", headers=admin_headers).json()
    assert listed[0]["horas_transcurridas"] == 8.0


def test_open_ticket_elapsed_grows(client, admin_headers, create_ticket, clock):
    ticket = create_ticket()
    url = f"/api/v1/tickets/{ticket['id']}"
    clock.advance(minutes=90)
    assert client.get(url, headers=admin_headers).json()["horas_transcurridas"] == 1.5
    clock.advance(hours=1)
    assert client.get(url, headers=admin_headers).json()["horas_transcurridas"] == 2.5


def test_priority_change_is_audited(client, admin_headers, create_ticket):
    ticket = create_ticket()
    r = client.put(
        f"/api/v1/tickets/{ticket['id']}", json={"prioridad": "Urgente"}, headers=admin_headers
    )
    assert r.json()["prioridad"] == "Urgente"
    entry = historial(client, ticket["id"], admin_headers)[-1]
    assert entry["tipo"] == "prioridad"
    assert entry["datos"] == {"de": "Media", "a": "Urgente"}


def test_invalid_status_is_rejected(client, admin_headers, create_ticket):
    ticket = create_ticket()
    r = client.put(
        f"/api/v1/tickets/{ticket['id']}", json={"estado": "Cerrado"}, headers=admin_headers
    )
    assert r.status_code == 400


def test_update_missing_ticket_writes_nothing(client, admin_headers, db):
    r = client.put("/api/v1/tickets/404", json={"estado": "En curso"}, headers=admin_headers)
    assert r.status_code == 404
    assert r.json() == {"error": "Ticket no encontrado"}
    assert db.query(TicketHistorial).count() == 0


def test_audit_failure_does_not_fail_update(client, admin_headers, create_ticket):
    ticket = create_ticket()
    broken = HistorialRecorder(sessionmaker(bind=create_engine("sqlite://")))
    app.dependency_overrides[deps.get_recorder] = lambda: broken

    r = client.put(
        f"/api/v1/tickets/{ticket['id']}", json={"estado": "En curso"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["estado"] == "En curso"
    assert r.json()["started_at"] is not None


def test_reassign_only_new_operator_is_logged_and_emailed(
    client, admin_headers, create_ticket, operators, mailer, db
):
    u1, u2, u3 = operators
    ticket = create_ticket()
    url = f"/api/v1/tickets/{ticket['id']}/asignaciones"

    r = client.post(url, json={"operarios": [u1.id, u2.id]}, headers=admin_headers)
    assert r.status_code == 200
    assert sorted(r.json()["nuevos"]) == sorted([u1.id, u2.id])

    mailer.sent.clear()
    r = client.post(url, json={"operarios": [u1.id, u3.id]}, headers=admin_headers)
    assert r.json()["nuevos"] == [u3.id]
    assert [to for to, _ in mailer.sent] == ["op3@ticketdesk.es"]
    assert mailer.sent[0][1] == "Ticket #1 asignado: No enciende"

    assert db.query(TicketAsignacion).filter_by(ticket_id=ticket["id"]).count() == 3
    asignaciones = [
        e for e in historial(client, ticket["id"], admin_headers) if e["tipo"] == "asignacion"
    ]
    assert len(asignaciones) == 2
    assert asignaciones[1]["datos"]["nuevos_operarios"] == [u3.id]


def test_assign_rejects_empty_list(client, admin_headers, create_ticket, db):
    ticket = create_ticket()
    r = client.post(
        f"/api/v1/tickets/{ticket['id']}/asignaciones",
        json={"operarios": []},
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert db.query(TicketAsignacion).count() == 0


def test_email_failure_does_not_fail_assignment(client, admin_headers, create_ticket, operators, mailer):
    mailer.fail_for.add("op1@ticketdesk.es")
    ticket = create_ticket()
    r = client.post(
        f"/api/v1/tickets/{ticket['id']}/asignaciones",
        json={"operarios": [operators[0].id, operators[1].id]},
        headers=admin_headers,
    )
    assert r.status_code == 200
    assert [to for to, _ in mailer.sent] == ["op2@ticketdesk.es"]


def test_unassign_is_idempotent(client, admin_headers, create_ticket, operators, db):
    ticket = create_ticket(operarios=[operators[0].id])
    url = f"/api/v1/tickets/{ticket['id']}/asignaciones/{operators[0].id}"

    assert client.delete(url, headers=admin_headers).json() == {"ok": True}
    assert client.delete(url, headers=admin_headers).status_code == 200
    assert db.query(TicketAsignacion).count() == 0

    entry = historial(client, ticket["id"], admin_headers)[-1]
    assert entry["tipo"] == "desasignacion"
    assert entry["datos"] == {"operario_id": operators[0].id, "nombre": "Operario 1"}


def test_unassign_on_missing_ticket_writes_no_audit(client, admin_headers, operators, db):
    r = client.delete(f"/api/v1/tickets/777/asignaciones/{operators[0].id}", headers=admin_headers)
    assert r.json() == {"ok": True}
    assert db.query(TicketHistorial).count() == 0


def test_hours_reject_non_positive(client, admin_headers, create_ticket, db):
    ticket = create_ticket()
    url = f"/api/v1/tickets/{ticket['id']}/horas"

    r = client.post(url, json={"horas": 2.5, "descripcion": "Cambio de fuente"}, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["fecha"] == "2025-03-10"

    r = client.post(url, json={"horas": -1}, headers=admin_headers)
    assert r.status_code == 400

    assert db.query(TicketHora).filter_by(ticket_id=ticket["id"]).count() == 1
    entry = historial(client, ticket["id"], admin_headers)[-1]
    assert entry["descripcion"] == "Ana Admin registró 2.5h: Cambio de fuente"

    detail = client.get(f"/api/v1/tickets/{ticket['id']}", headers=admin_headers).json()
    assert detail["horas_totales"] == 2.5


def test_notes_and_internal_notes(client, admin_headers, create_ticket):
    ticket = create_ticket()
    base = f"/api/v1/tickets/{ticket['id']}"

    r = client.put(f"{base}/notas", json={"notas": "Llamar antes"}, headers=admin_headers)
    assert r.json()["notas"] == "Llamar antes"

    r = client.post(f"{base}/notas-internas", json={"texto": "   "}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "El texto no puede estar vacío."

    r = client.post(f"{base}/notas-internas", json={"texto": "Cliente moroso"}, headers=admin_headers)
    assert r.status_code == 201
    assert r.json()["tipo"] == "nota_interna"
    assert r.json()["usuario_nombre"] == "Ana Admin"


def test_list_filters(client, admin_headers, create_ticket, operators):
    create_ticket(asunto="Portátil lento", prioridad="Urgente", operarios=[operators[0].id])
    create_ticket(asunto="Correo caído")

    def listed(**params):
        r = client.get("/api/v1/tickets/", params=params, headers=admin_headers)
        assert r.status_code == 200
        return [t["asunto"] for t in r.json()]

    assert sorted(listed()) == ["Correo caído", "Portátil lento"]
    assert listed(prioridad="Urgente") == ["Portátil lento"]
    assert len(listed(prioridad="all")) == 2
    assert listed(operario_id=operators[0].id) == ["Portátil lento"]
    assert listed(search="correo") == ["Correo caído"]
    assert len(listed(search="Clínica")) == 2
    assert listed(desde="2025-03-11") == []
    assert len(listed(desde="2025-03-10", hasta="2025-03-10")) == 2


def test_upload_files_and_audit(client, admin_headers, create_ticket, db, ticket_storage):
    ticket = create_ticket()
    r = client.post(
        f"/api/v1/tickets/{ticket['id']}/archivos",
        files=[("files", PDF), ("files", ("foto.png", b"\x89PNG", "image/png"))],
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    assert [a["nombre_original"] for a in r.json()] == ["informe.pdf", "foto.png"]

    rows = db.query(TicketArchivo).all()
    assert len(rows) == 2
    assert all(ticket_storage.open_path(row.storage_path).is_file() for row in rows)

    entry = historial(client, ticket["id"], admin_headers)[-1]
    assert entry["tipo"] == "archivo"
    assert entry["datos"]["archivos"] == ["informe.pdf", "foto.png"]


def test_upload_rejects_disallowed_type(client, admin_headers, create_ticket, db):
    ticket = create_ticket()
    r = client.post(
        f"/api/v1/tickets/{ticket['id']}/archivos",
        files=[("files", ("script.sh", b"rm -rf", "application/x-sh"))],
        headers=admin_headers,
    )
    assert r.status_code == 400
    assert db.query(TicketArchivo).count() == 0


def test_search_treats_wildcards_literally(client, admin_headers, create_ticket):
    create_ticket(asunto="Disco al 100% de uso")
    create_ticket(asunto="Disco al 1000 de uso")
    create_ticket(asunto="Error en log_app")
    create_ticket(asunto="Error en logXapp")

    def listed(search):
        r = client.get("/api/v1/tickets/", params={"search": search}, headers=admin_headers)
        return [t["asunto"] for t in r.json()]

    assert listed("100%") == ["Disco al 100% de uso"]
    assert listed("log_app") == ["Error en log_app"]


def test_upload_keeps_files_that_were_stored(client, admin_headers, create_ticket, db, tmp_path):
    ticket = create_ticket()
    storage = FailingPutStorage("ticket-archivos", root=str(tmp_path), secret="test-secret")
    app.dependency_overrides[deps.get_ticket_storage] = lambda: storage

    r = client.post(
        f"/api/v1/tickets/{ticket['id']}/archivos",
        files=[
            ("files", PDF),
            ("files", ("corrupto.pdf", b"FALLA pdf", "application/pdf")),
            ("files", ("foto.png", b"\x89PNG", "image/png")),
        ],
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    assert [a["nombre_original"] for a in r.json()] == ["informe.pdf", "foto.png"]
    assert sorted(a.nombre_original for a in db.query(TicketArchivo)) == ["foto.png", "informe.pdf"]

    entry = historial(client, ticket["id"], admin_headers)[-1]
    assert entry["tipo"] == "archivo"
    assert entry["datos"]["archivos"] == ["informe.pdf", "foto.png"]


def test_upload_fails_when_no_file_is_stored(client, admin_headers, create_ticket, db, tmp_path):
    ticket = create_ticket()
    storage = FailingPutStorage("ticket-archivos", root=str(tmp_path), secret="test-secret")
    app.dependency_overrides[deps.get_ticket_storage] = lambda: storage

    r = client.post(
        f"/api/v1/tickets/{ticket['id']}/archivos",
        files=[
            ("files", ("a.pdf", b"FALLA a", "application/pdf")),
            ("files", ("b.pdf", b"FALLA b", "application/pdf")),
        ],
        headers=admin_headers,
    )
    assert r.status_code == 500
    assert r.json()["error"].startswith("No se pudo subir ningún archivo.")
    assert db.query(TicketArchivo).count() == 0
    assert [e["tipo"] for e in historial(client, ticket["id"], admin_headers)] == ["creacion"]


def test_upload_removes_object_when_metadata_insert_fails(
    client, admin_headers, create_ticket, db, ticket_storage
):
    ticket = create_ticket()

    def reject_roto(mapper, connection, target):
        if target.nombre_original == "roto.pdf":
            raise SQLAlchemyError("fallo de inserción")

    event.listen(TicketArchivo, "before_insert", reject_roto)
    try:
        r = client.post(
            f"/api/v1/tickets/{ticket['id']}/archivos",
            files=[("files", ("roto.pdf", b"%PDF roto", "application/pdf")), ("files", PDF)],
            headers=admin_headers,
        )
    finally:
        event.remove(TicketArchivo, "before_insert", reject_roto)

    assert r.status_code == 201, r.text
    assert [a["nombre_original"] for a in r.json()] == ["informe.pdf"]
    stored = [p for p in ticket_storage.base.rglob("*") if p.is_file()]
    assert len(stored) == 1
    assert db.query(TicketArchivo).one().storage_path in stored[0].as_posix()


def test_delete_requires_admin(client, worker_headers, create_ticket):
    ticket = create_ticket()
    r = client.delete(f"/api/v1/tickets/{ticket['id']}", headers=worker_headers)
    assert r.status_code == 403


def test_delete_removes_rows_and_objects(client, admin_headers, create_ticket, db, ticket_storage):
    ticket = create_ticket()
    client.post(
        f"/api/v1/tickets/{ticket['id']}/archivos", files=[("files", PDF)], headers=admin_headers
    )
    path = db.query(TicketArchivo).one().storage_path

    r = client.delete(f"/api/v1/tickets/{ticket['id']}", headers=admin_headers)
    assert r.status_code == 200
    db.expire_all()
    assert db.query(Ticket).count() == 0
    assert db.query(TicketArchivo).count() == 0
    assert db.query(TicketHistorial).count() == 0
    assert not (ticket_storage.base / path).exists()


def test_delete_keeps_rows_when_storage_fails(client, admin_headers, create_ticket, db, tmp_path):
    ticket = create_ticket()
    client.post(
        f"/api/v1/tickets/{ticket['id']}/archivos", files=[("files", PDF)], headers=admin_headers
    )
    failing = FailingDeleteStorage("ticket-archivos", root=str(tmp_path), secret="test-secret")
    app.dependency_overrides[deps.get_ticket_storage] = lambda: failing

    r = client.delete(f"/api/v1/tickets/{ticket['id']}", headers=admin_headers)
    assert r.status_code == 500
    assert "error" in r.json()
    db.expire_all()
    assert db.query(Ticket).count() == 1
    assert db.query(TicketArchivo).count() == 1


def test_comments_with_files(client, admin_headers, create_ticket):
    ticket = create_ticket()
    url = f"/api/v1/tickets/{ticket['id']}/comentarios"

    r = client.post(url, data={"contenido": ""}, headers=admin_headers)
    assert r.status_code == 400

    r = client.post(
        url,
        data={"contenido": "Adjunto el informe", "file_names": '["Informe técnico.pdf"]'},
        files=[("files", PDF)],
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["usuario_nombre"] == "Ana Admin"
    assert [a["nombre_original"] for a in body["archivos"]] == ["Informe técnico.pdf"]

    listed = client.get(url, headers=admin_headers).json()
    assert [c["contenido"] for c in listed] == ["Adjunto el informe"]
    assert historial(client, ticket["id"], admin_headers)[-1]["tipo"] == "comentario"


def test_comment_on_missing_ticket(client, admin_headers):
    r = client.post(
        "/api/v1/tickets/999/comentarios", data={"contenido": "hola"}, headers=admin_headers
    )
    assert r.status_code == 404


def test_unknown_route_uses_error_shape(client):
    r = client.get("/api/v1/no-existe")
    assert r.status_code == 404
    assert "error" in r.json()
