"""initial schema"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

NOW = sa.text("CURRENT_TIMESTAMP")


def _created_at():
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False
    )


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("nombre", sa.String(length=255), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("rol", sa.String(length=50), nullable=False, server_default="trabajador"),
        sa.Column("activo", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "empresas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=255), nullable=False),
        sa.Column("cif", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("telefono", sa.String(length=50), nullable=True),
        sa.Column("direccion", sa.Text(), nullable=True),
        sa.Column("contactos", sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_empresas_nombre", "empresas", ["nombre"])

    op.create_table(
        "dispositivos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "empresa_id",
            sa.Integer(),
            sa.ForeignKey("empresas.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("nombre", sa.String(length=255), nullable=False),
        sa.Column("tipo", sa.String(length=100), nullable=True),
        sa.Column("categoria", sa.String(length=100), nullable=True),
        sa.Column("ip", sa.String(length=100), nullable=True),
        sa.Column("numero_serie", sa.String(length=255), nullable=True),
        sa.Column("notas", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_dispositivos_empresa_id", "dispositivos", ["empresa_id"])
    op.create_index("ix_dispositivos_categoria", "dispositivos", ["categoria"])

    op.create_table(
        "tickets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("numero", sa.Integer(), nullable=False),
        sa.Column("asunto", sa.String(length=255), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("notas", sa.Text(), nullable=True),
        sa.Column("prioridad", sa.String(length=50), nullable=False, server_default="Media"),
        sa.Column("estado", sa.String(length=50), nullable=False, server_default="Pendiente"),
        sa.Column("empresa_id", sa.Integer(), sa.ForeignKey("empresas.id"), nullable=False),
        sa.Column(
            "dispositivo_id",
            sa.Integer(),
            sa.ForeignKey("dispositivos.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoiced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False
        ),
    )
    op.create_index("ix_tickets_numero", "tickets", ["numero"], unique=True)
    op.create_index("ix_tickets_estado", "tickets", ["estado"])
    op.create_index("ix_tickets_empresa_id", "tickets", ["empresa_id"])
    op.create_index("ix_tickets_created_at", "tickets", ["created_at"])

    op.create_table(
        "ticket_asignaciones",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("asignado_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "asignado_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False
        ),
        sa.UniqueConstraint("ticket_id", "user_id", name="uq_ticket_asignacion"),
    )
    op.create_index("ix_ticket_asignaciones_ticket_id", "ticket_asignaciones", ["ticket_id"])

    op.create_table(
        "ticket_historial",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("tipo", sa.String(length=50), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=False),
        sa.Column("datos", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_ticket_historial_ticket_id", "ticket_historial", ["ticket_id"])

    op.create_table(
        "ticket_horas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("horas", sa.Float(), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("fecha", sa.Date(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_ticket_horas_ticket_id", "ticket_horas", ["ticket_id"])

    op.create_table(
        "ticket_archivos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("nombre_original", sa.String(length=255), nullable=False),
        sa.Column("storage_path", sa.String(length=512), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=True),
        sa.Column("tamanio", sa.Integer(), nullable=True),
        sa.Column("subido_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    )
    op.create_index("ix_ticket_archivos_ticket_id", "ticket_archivos", ["ticket_id"])

    op.create_table(
        "ticket_comentarios",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "ticket_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("contenido", sa.Text(), nullable=False),
        sa.Column("editado", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False
        ),
    )
    op.create_index("ix_ticket_comentarios_ticket_id", "ticket_comentarios", ["ticket_id"])

    op.create_table(
        "ticket_comentarios_archivos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "comentario_id",
            sa.Integer(),
            sa.ForeignKey("ticket_comentarios.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("nombre_original", sa.String(length=255), nullable=False),
        sa.Column("nombre_storage", sa.String(length=512), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=True),
        sa.Column("tamanio", sa.Integer(), nullable=True),
        sa.Column("subido_by", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_ticket_comentarios_archivos_comentario_id",
        "ticket_comentarios_archivos",
        ["comentario_id"],
    )

    op.create_table(
        "chat_canales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.String(length=100), nullable=False, unique=True),
        sa.Column("descripcion", sa.Text(), nullable=True),
        sa.Column("tipo", sa.String(length=50), nullable=False, server_default="canal"),
        sa.Column("creado_por", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        _created_at(),
    )

    op.create_table(
        "chat_canales_miembros",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "canal_id",
            sa.Integer(),
            sa.ForeignKey("chat_canales.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rol", sa.String(length=50), nullable=False, server_default="miembro"),
        sa.Column(
            "joined_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False
        ),
        sa.UniqueConstraint("canal_id", "user_id", name="uq_chat_canal_miembro"),
    )
    op.create_index("ix_chat_canales_miembros_canal_id", "chat_canales_miembros", ["canal_id"])

    op.create_table(
        "chat_mensajes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "canal_id",
            sa.Integer(),
            sa.ForeignKey("chat_canales.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("contenido", sa.Text(), nullable=False),
        sa.Column(
            "ticket_ref_id",
            sa.Integer(),
            sa.ForeignKey("tickets.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("anclado", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("editado", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_chat_mensajes_canal_id", "chat_mensajes", ["canal_id"])
    op.create_index("ix_chat_mensajes_created_at", "chat_mensajes", ["created_at"])

    op.create_table(
        "chat_mensajes_archivos",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "mensaje_id",
            sa.Integer(),
            sa.ForeignKey("chat_mensajes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("nombre_original", sa.String(length=255), nullable=False),
        sa.Column("nombre_storage", sa.String(length=512), nullable=False),
        sa.Column("mime_type", sa.String(length=255), nullable=True),
        sa.Column("tamanio", sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_chat_mensajes_archivos_mensaje_id", "chat_mensajes_archivos", ["mensaje_id"])


def downgrade():
    op.drop_table("chat_mensajes_archivos")
    op.drop_table("chat_mensajes")
    op.drop_table("chat_canales_miembros")
    op.drop_table("chat_canales")
    op.drop_table("ticket_comentarios_archivos")
    op.drop_table("ticket_comentarios")
    op.drop_table("ticket_archivos")
    op.drop_table("ticket_horas")
    op.drop_table("ticket_historial")
    op.drop_table("ticket_asignaciones")
    op.drop_table("tickets")
    op.drop_table("dispositivos")
    op.drop_table("empresas")
    op.drop_table("users")
