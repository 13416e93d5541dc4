"""SQLAlchemy models for the imobiliária backend."""

from datetime import UTC, date, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone=True columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class Base(DeclarativeBase):
    pass


# --- Users ---
class User(Base):
    __tablename__ = "usuarios"
    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True)
    email: Mapped[str] = mapped_column(String(255), unique=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    full_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(30), default="real-estate-agent")  # admin, real-estate-agent
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_attempts: Mapped[int] = mapped_column(Integer, default=0)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# --- Catalog ---
class Cidade(Base):
    __tablename__ = "cidades"
    id: Mapped[int] = mapped_column(primary_key=True)
    nome: Mapped[str] = mapped_column(String(255), unique=True)
    ativa: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Cliente(Base):
    __tablename__ = "clientes"
    id: Mapped[int] = mapped_column(primary_key=True)
    nome: Mapped[str] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    telefone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    cpf_cnpj: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    endereco: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    observacoes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("ix_clientes_email", "email"),)


class Imovel(Base):
    __tablename__ = "imoveis"
    id: Mapped[int] = mapped_column(primary_key=True)
    nome: Mapped[str] = mapped_column(String(255))
    tipo: Mapped[str] = mapped_column(String(30))
    finalidade: Mapped[str] = mapped_column(String(20))  # venda, aluguel, ambos
    valor_venda: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    valor_aluguel: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    descricao: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quartos: Mapped[int] = mapped_column(Integer, default=0)
    banheiros: Mapped[int] = mapped_column(Integer, default=0)
    area_total: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    caracteristicas: Mapped[list] = mapped_column(JSON, default=list)
    comodidades: Mapped[list] = mapped_column(JSON, default=list)
    endereco_completo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bairro: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    destaque: Mapped[bool] = mapped_column(Boolean, default=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True)
    cidade_id: Mapped[Optional[int]] = mapped_column(ForeignKey("cidades.id"), nullable=True)
    cliente_id: Mapped[Optional[int]] = mapped_column(ForeignKey("clientes.id"), nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    cidade: Mapped[Optional[Cidade]] = relationship(lazy="joined")
    cliente: Mapped[Optional[Cliente]] = relationship(lazy="joined")
    imagens: Mapped[list["ImovelImagem"]] = relationship(
        back_populates="imovel",
        cascade="all, delete-orphan",
        order_by="ImovelImagem.ordem",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_imoveis_cidade", "cidade_id"),
        Index("ix_imoveis_ativo_destaque", "ativo", "destaque"),
    )


class ImovelImagem(Base):
    __tablename__ = "imovel_imagens"
    id: Mapped[int] = mapped_column(primary_key=True)
    imovel_id: Mapped[int] = mapped_column(ForeignKey("imoveis.id", ondelete="CASCADE"))
    url: Mapped[str] = mapped_column(String(500))
    url_thumb: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    ordem: Mapped[int] = mapped_column(Integer, default=0)
    tipo: Mapped[str] = mapped_column(String(20), default="paisagem")  # retrato, paisagem
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    imovel: Mapped[Imovel] = relationship(back_populates="imagens")


# --- Rentals ---
class Contrato(Base):
    __tablename__ = "contratos_aluguel"
    id: Mapped[int] = mapped_column(primary_key=True)
    imovel_id: Mapped[int] = mapped_column(ForeignKey("imoveis.id"))
    inquilino_id: Mapped[int] = mapped_column(ForeignKey("clientes.id"))
    proprietario_id: Mapped[Optional[int]] = mapped_column(ForeignKey("clientes.id"), nullable=True)
    valor_aluguel: Mapped[float] = mapped_column(Float)
    valor_deposito: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    data_inicio: Mapped[date] = mapped_column(Date)
    data_fim: Mapped[date] = mapped_column(Date)
    dia_vencimento: Mapped[int] = mapped_column(Integer, default=10)
    status: Mapped[str] = mapped_column(String(20), default="ativo")  # ativo, encerrado, suspenso
    observacoes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    imovel: Mapped[Imovel] = relationship(lazy="joined")
    inquilino: Mapped[Cliente] = relationship(foreign_keys=[inquilino_id], lazy="joined")
    proprietario: Mapped[Optional[Cliente]] = relationship(foreign_keys=[proprietario_id], lazy="joined")
    pagamentos: Mapped[list["Pagamento"]] = relationship(
        back_populates="contrato",
        cascade="all, delete-orphan",
        order_by="Pagamento.mes_referencia",
    )

    __table_args__ = (
        Index("ix_contratos_status_fim", "status", "data_fim"),
        # one active contract per property
        Index(
            "ux_contratos_imovel_ativo",
            "imovel_id",
            unique=True,
            sqlite_where=text("status = 'ativo'"),
            postgresql_where=text("status = 'ativo'"),
        ),
    )


class Pagamento(Base):
    __tablename__ = "pagamentos_aluguel"
    id: Mapped[int] = mapped_column(primary_key=True)
    contrato_id: Mapped[int] = mapped_column(ForeignKey("contratos_aluguel.id", ondelete="CASCADE"))
    mes_referencia: Mapped[date] = mapped_column(Date)  # first day of the month
    valor_devido: Mapped[float] = mapped_column(Float)
    valor_pago: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    data_vencimento: Mapped[date] = mapped_column(Date)
    data_pagamento: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    valor_juros: Mapped[float] = mapped_column(Float, default=0)
    valor_multa: Mapped[float] = mapped_column(Float, default=0)
    status: Mapped[str] = mapped_column(String(20), default="pendente")  # pendente, pago, atrasado, cancelado
    observacoes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    contrato: Mapped[Contrato] = relationship(back_populates="pagamentos", lazy="joined")

    __table_args__ = (
        UniqueConstraint("contrato_id", "mes_referencia", name="uq_pagamentos_contrato_mes"),
        Index("ix_pagamentos_status_vencimento", "status", "data_vencimento"),
    )


# --- Notifications ---
class Notificacao(Base):
    __tablename__ = "notificacoes"
    id: Mapped[int] = mapped_column(primary_key=True)
    tipo: Mapped[str] = mapped_column(String(40))
    titulo: Mapped[str] = mapped_column(String(255))
    mensagem: Mapped[str] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default="pendente")
    prioridade: Mapped[str] = mapped_column(String(20), default="media")
    data_criacao: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    data_envio: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    data_leitura: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("usuarios.id"), nullable=True)
    # contratos_aluguel / pagamentos_aluguel ids, kept as text
    contrato_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    pagamento_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    metadados: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    __table_args__ = (Index("ix_notificacoes_user_status", "user_id", "status"),)


class ConfiguracaoNotificacao(Base):
    __tablename__ = "configuracoes_notificacao"
    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("usuarios.id"), unique=True)
    dias_aviso_vencimento: Mapped[int] = mapped_column(Integer, default=3)
    notificar_vencimento_proximo: Mapped[bool] = mapped_column(Boolean, default=True)
    notificar_pagamento_atrasado: Mapped[bool] = mapped_column(Boolean, default=True)
    dias_lembrete_atraso: Mapped[int] = mapped_column(Integer, default=7)
    max_lembretes_atraso: Mapped[int] = mapped_column(Integer, default=3)
    dias_aviso_contrato_vencendo: Mapped[int] = mapped_column(Integer, default=30)
    notificar_contrato_vencendo: Mapped[bool] = mapped_column(Boolean, default=True)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


# --- Security ---
class AuditLog(Base):
    __tablename__ = "logs_auditoria"
    id: Mapped[int] = mapped_column(primary_key=True)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    event_type: Mapped[str] = mapped_column(String(40))
    severity: Mapped[str] = mapped_column(String(10))
    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    username: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("ix_logs_auditoria_ts", "ts"),
        Index("ix_logs_auditoria_event_ts", "event_type", "ts"),
    )


class RateLimitEntry(Base):
    __tablename__ = "rate_limits"
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0)
    window_start: Mapped[int] = mapped_column(Integer)  # epoch seconds
    blocked_until: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
