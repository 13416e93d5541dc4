"""Initial schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    conn = op.get_bind()
    dialect = conn.dialect.name if conn is not None else "sqlite"
    true_def = sa.text("TRUE") if dialect == "postgresql" else sa.text("1")
    false_def = sa.text("FALSE") if dialect == "postgresql" else sa.text("0")

    op.create_table(
        "usuarios",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False, unique=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100)),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="real-estate-agent"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=true_def),
        _ts("last_login", nullable=True),
        sa.Column("failed_attempts", sa.Integer(), nullable=False, server_default="0"),
        _ts("locked_until", nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("usuarios.id")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "cidades",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(length=255), nullable=False, unique=True),
        sa.Column("ativa", sa.Boolean(), nullable=False, server_default=true_def),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "clientes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255)),
        sa.Column("telefone", sa.String(length=20)),
        sa.Column("cpf_cnpj", sa.String(length=20)),
        sa.Column("endereco", sa.Text()),
        sa.Column("observacoes", sa.Text()),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("usuarios.id")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_clientes_email", "clientes", ["email"])
    op.create_table(
        "imoveis",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nome", sa.String(length=255), nullable=False),
        sa.Column("tipo", sa.String(length=30), nullable=False),
        sa.Column("finalidade", sa.String(length=20), nullable=False),
        sa.Column("valor_venda", sa.Float()),
        sa.Column("valor_aluguel", sa.Float()),
        sa.Column("descricao", sa.Text()),
        sa.Column("quartos", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("banheiros", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("area_total", sa.Float()),
        sa.Column("caracteristicas", sa.JSON(), nullable=False),
        sa.Column("comodidades", sa.JSON(), nullable=False),
        sa.Column("endereco_completo", sa.Text()),
        sa.Column("bairro", sa.String(length=255)),
        sa.Column("destaque", sa.Boolean(), nullable=False, server_default=false_def),
        sa.Column("ativo", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("cidade_id", sa.Integer(), sa.ForeignKey("cidades.id")),
        sa.Column("cliente_id", sa.Integer(), sa.ForeignKey("clientes.id")),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("usuarios.id")),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_imoveis_cidade", "imoveis", ["cidade_id"])
    op.create_index("ix_imoveis_ativo_destaque", "imoveis", ["ativo", "destaque"])
    op.create_table(
        "imovel_imagens",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("imovel_id", sa.Integer(), sa.ForeignKey("imoveis.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url", sa.String(length=500), nullable=False),
        sa.Column("url_thumb", sa.String(length=500)),
        sa.Column("storage_path", sa.String(length=500)),
        sa.Column("ordem", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tipo", sa.String(length=20), nullable=False, server_default="paisagem"),
        _ts("created_at"),
    )
    op.create_table(
        "notificacoes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("tipo", sa.String(length=40), nullable=False),
        sa.Column("titulo", sa.String(length=255), nullable=False),
        sa.Column("mensagem", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pendente"),
        sa.Column("prioridade", sa.String(length=20), nullable=False, server_default="media"),
        _ts("data_criacao"),
        _ts("data_envio", nullable=True),
        _ts("data_leitura", nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("usuarios.id")),
        sa.Column("contrato_id", sa.String(length=64)),
        sa.Column("pagamento_id", sa.String(length=64)),
        sa.Column("metadados", sa.JSON()),
    )
    op.create_index("ix_notificacoes_user_status", "notificacoes", ["user_id", "status"])
    op.create_table(
        "configuracoes_notificacao",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("usuarios.id"), nullable=False, unique=True),
        sa.Column("dias_aviso_vencimento", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("notificar_vencimento_proximo", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("notificar_pagamento_atrasado", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("dias_lembrete_atraso", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("max_lembretes_atraso", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("dias_aviso_contrato_vencendo", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("notificar_contrato_vencendo", sa.Boolean(), nullable=False, server_default=true_def),
        sa.Column("ativo", sa.Boolean(), nullable=False, server_default=true_def),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_table(
        "logs_auditoria",
        sa.Column("id", sa.Integer(), primary_key=True),
        _ts("ts"),
        sa.Column("event_type", sa.String(length=40), nullable=False),
        sa.Column("severity", sa.String(length=10), nullable=False),
        sa.Column("user_id", sa.Integer()),
        sa.Column("username", sa.String(length=50)),
        sa.Column("ip_address", sa.String(length=64)),
        sa.Column("user_agent", sa.String(length=500)),
        sa.Column("details", sa.JSON()),
        sa.Column("request_id", sa.String(length=64)),
    )
    op.create_index("ix_logs_auditoria_ts", "logs_auditoria", ["ts"])
    op.create_index("ix_logs_auditoria_event_ts", "logs_auditoria", ["event_type", "ts"])
    op.create_table(
        "rate_limits",
        sa.Column("key", sa.String(length=255), primary_key=True),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("window_start", sa.Integer(), nullable=False),
        sa.Column("blocked_until", sa.Integer()),
        _ts("updated_at"),
    )


def downgrade() -> None:
    op.drop_table("rate_limits")
    op.drop_index("ix_logs_auditoria_event_ts", table_name="logs_auditoria")
    op.drop_index("ix_logs_auditoria_ts", table_name="logs_auditoria")
    op.drop_table("logs_auditoria")
    op.drop_table("configuracoes_notificacao")
    op.drop_index("ix_notificacoes_user_status", table_name="notificacoes")
    op.drop_table("notificacoes")
    op.drop_table("imovel_imagens")
    op.drop_index("ix_imoveis_ativo_destaque", table_name="imoveis")
    op.drop_index("ix_imoveis_cidade", table_name="imoveis")
    op.drop_table("imoveis")
    op.drop_index("ix_clientes_email", table_name="clientes")
    op.drop_table("clientes")
    op.drop_table("cidades")
    op.drop_table("usuarios")
