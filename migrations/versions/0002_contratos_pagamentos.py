"""add contratos_aluguel and pagamentos_aluguel

Revision ID: 0002_contratos_pagamentos
Revises: 0001_init
Create Date: 2026-10-18
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = "0002_contratos_pagamentos"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def _ts(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    conn = op.get_bind()
    insp = inspect(conn)
    tables = insp.get_table_names()
    if "contratos_aluguel" not in tables:
        op.create_table(
            "contratos_aluguel",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("imovel_id", sa.Integer(), sa.ForeignKey("imoveis.id"), nullable=False),
            sa.Column("inquilino_id", sa.Integer(), sa.ForeignKey("clientes.id"), nullable=False),
            sa.Column("proprietario_id", sa.Integer(), sa.ForeignKey("clientes.id"), nullable=True),
            sa.Column("valor_aluguel", sa.Float(), nullable=False),
            sa.Column("valor_deposito", sa.Float(), nullable=True),
            sa.Column("data_inicio", sa.Date(), nullable=False),
            sa.Column("data_fim", sa.Date(), nullable=False),
            sa.Column("dia_vencimento", sa.Integer(), nullable=False, server_default="10"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="ativo"),
            sa.Column("observacoes", sa.Text(), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("usuarios.id"), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
        )
    if "pagamentos_aluguel" not in tables:
        op.create_table(
            "pagamentos_aluguel",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "contrato_id",
                sa.Integer(),
                sa.ForeignKey("contratos_aluguel.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("mes_referencia", sa.Date(), nullable=False),
            sa.Column("valor_devido", sa.Float(), nullable=False),
            sa.Column("valor_pago", sa.Float(), nullable=True),
            sa.Column("data_vencimento", sa.Date(), nullable=False),
            sa.Column("data_pagamento", sa.Date(), nullable=True),
            sa.Column("valor_juros", sa.Float(), nullable=False, server_default="0"),
            sa.Column("valor_multa", sa.Float(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pendente"),
            sa.Column("observacoes", sa.Text(), nullable=True),
            _ts("created_at"),
            _ts("updated_at"),
            sa.UniqueConstraint("contrato_id", "mes_referencia", name="uq_pagamentos_contrato_mes"),
        )

    insp = inspect(conn)
    contrato_idx = {ix["name"] for ix in insp.get_indexes("contratos_aluguel")}
    if "ix_contratos_status_fim" not in contrato_idx:
        op.create_index("ix_contratos_status_fim", "contratos_aluguel", ["status", "data_fim"])
    if "ux_contratos_imovel_ativo" not in contrato_idx:
        op.create_index(
            "ux_contratos_imovel_ativo",
            "contratos_aluguel",
            ["imovel_id"],
            unique=True,
            sqlite_where=sa.text("status = 'ativo'"),
            postgresql_where=sa.text("status = 'ativo'"),
        )
    pagamento_idx = {ix["name"] for ix in insp.get_indexes("pagamentos_aluguel")}
    if "ix_pagamentos_status_vencimento" not in pagamento_idx:
        op.create_index(
            "ix_pagamentos_status_vencimento", "pagamentos_aluguel", ["status", "data_vencimento"]
        )


def downgrade() -> None:
    op.drop_index("ix_pagamentos_status_vencimento", table_name="pagamentos_aluguel")
    op.drop_table("pagamentos_aluguel")
    op.drop_index("ux_contratos_imovel_ativo", table_name="contratos_aluguel")
    op.drop_index("ix_contratos_status_fim", table_name="contratos_aluguel")
    op.drop_table("contratos_aluguel")
