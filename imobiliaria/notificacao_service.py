"""Notification service: create, query, state transitions, per-user settings, dispatch.

`processar_notificacoes` is the daily pass over rental contracts and payments:
it flags overdue payments and creates the due-date notifications each user
asked for in their settings. Reruns on the same day create nothing new.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any, Optional

from sqlalchemy import func, select

from . import metrics
from .db import get_session
from .models import ConfiguracaoNotificacao, Contrato, Notificacao, Pagamento, as_utc, utcnow

logger = logging.getLogger("imobiliaria.notificacoes")

UNREAD_STATUSES = ("pendente", "enviada")

CONFIG_FIELDS = (
    "dias_aviso_vencimento",
    "notificar_vencimento_proximo",
    "notificar_pagamento_atrasado",
    "dias_lembrete_atraso",
    "max_lembretes_atraso",
    "dias_aviso_contrato_vencendo",
    "notificar_contrato_vencendo",
    "ativo",
)


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def notificacao_to_dict(n: Notificacao) -> dict[str, Any]:
    return {
        "id": n.id,
        "tipo": n.tipo,
        "titulo": n.titulo,
        "mensagem": n.mensagem,
        "status": n.status,
        "prioridade": n.prioridade,
        "data_criacao": _iso(n.data_criacao),
        "data_envio": _iso(n.data_envio),
        "data_leitura": _iso(n.data_leitura),
        "user_id": n.user_id,
        "contrato_id": n.contrato_id,
        "pagamento_id": n.pagamento_id,
        "metadata": n.metadados or {},
    }


def configuracao_to_dict(c: ConfiguracaoNotificacao) -> dict[str, Any]:
    data: dict[str, Any] = {"id": c.id, "user_id": c.user_id}
    for name in CONFIG_FIELDS:
        data[name] = getattr(c, name)
    data["created_at"] = _iso(c.created_at)
    data["updated_at"] = _iso(c.updated_at)
    return data


@dataclass
class NotificacaoFilters:
    tipo: str | None = None
    status: str | None = None
    prioridade: str | None = None
    user_id: int | None = None
    contrato_id: str | None = None
    data_inicio: datetime | None = None
    data_fim: datetime | None = None
    apenas_nao_lidas: bool = False


def _endereco(c: Contrato) -> str:
    imovel = c.imovel
    if imovel is None:
        return "N/A"
    return imovel.endereco_completo or imovel.nome


def _inquilino(c: Contrato) -> str | None:
    return c.inquilino.nome if c.inquilino else None


def _valor_total(p: Pagamento) -> float:
    return round(p.valor_devido + (p.valor_juros or 0) + (p.valor_multa or 0), 2)


def _brl(value: float) -> str:
    return f"R$ {value:.2f}"


class InvalidTransition(Exception):
    """A state change that does not apply to the notification's current status."""


class NotificacaoService:
    def criar(
        self,
        *,
        tipo: str,
        titulo: str,
        mensagem: str,
        prioridade: str,
        user_id: int | None,
        contrato_id: str | None = None,
        pagamento_id: str | None = None,
        metadados: dict | None = None,
    ) -> dict[str, Any]:
        db = get_session()
        try:
            n = Notificacao(
                tipo=tipo,
                titulo=titulo,
                mensagem=mensagem,
                prioridade=prioridade,
                status="pendente",
                data_criacao=utcnow(),
                user_id=user_id,
                contrato_id=contrato_id,
                pagamento_id=pagamento_id,
                metadados=metadados,
            )
            db.add(n)
            db.commit()
            db.refresh(n)
            metrics.increment("notificacoes.created", {"tipo": tipo})
            return notificacao_to_dict(n)
        finally:
            db.close()

    def buscar(self, filters: NotificacaoFilters, page: int = 1, limit: int = 20) -> tuple[list[dict[str, Any]], int]:
        db = get_session()
        try:
            stmt = select(Notificacao)
            if filters.tipo:
                stmt = stmt.where(Notificacao.tipo == filters.tipo)
            if filters.status:
                stmt = stmt.where(Notificacao.status == filters.status)
            if filters.prioridade:
                stmt = stmt.where(Notificacao.prioridade == filters.prioridade)
            if filters.user_id is not None:
                stmt = stmt.where(Notificacao.user_id == filters.user_id)
            if filters.contrato_id:
                stmt = stmt.where(Notificacao.contrato_id == filters.contrato_id)
            if filters.data_inicio:
                stmt = stmt.where(Notificacao.data_criacao >= filters.data_inicio)
            if filters.data_fim:
                stmt = stmt.where(Notificacao.data_criacao <= filters.data_fim)
            if filters.apenas_nao_lidas:
                stmt = stmt.where(Notificacao.status.in_(UNREAD_STATUSES))
            total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = db.execute(
                stmt.order_by(Notificacao.data_criacao.desc(), Notificacao.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            ).scalars().all()
            return [notificacao_to_dict(n) for n in rows], int(total)
        finally:
            db.close()

    def contar_nao_lidas(self, user_id: int) -> int:
        db = get_session()
        try:
            return int(
                db.execute(
                    select(func.count())
                    .select_from(Notificacao)
                    .where(Notificacao.user_id == user_id, Notificacao.status.in_(UNREAD_STATUSES))
                ).scalar_one()
            )
        finally:
            db.close()

    def obter(self, notificacao_id: int, user_id: int | None = None) -> Optional[dict[str, Any]]:
        db = get_session()
        try:
            n = db.get(Notificacao, notificacao_id)
            if n is None or (user_id is not None and n.user_id != user_id):
                return None
            return notificacao_to_dict(n)
        finally:
            db.close()

    def _transition(self, notificacao_id: int, user_id: int | None, action: str) -> Optional[dict[str, Any]]:
        db = get_session()
        try:
            n = db.get(Notificacao, notificacao_id)
            if n is None or (user_id is not None and n.user_id != user_id):
                return None
            now = utcnow()
            if action == "marcar_como_lida":
                if n.status == "cancelada":
                    raise InvalidTransition("Notificação cancelada não pode ser marcada como lida")
                if n.data_leitura is None:
                    n.data_leitura = now
                n.status = "lida"
            elif action == "marcar_como_enviada":
                if n.status in ("lida", "cancelada"):
                    raise InvalidTransition(f"Notificação {n.status} não pode ser marcada como enviada")
                n.status = "enviada"
                n.data_envio = now
            elif action == "cancelar":
                if n.status == "lida":
                    raise InvalidTransition("Notificação lida não pode ser cancelada")
                n.status = "cancelada"
            else:
                raise ValueError(action)
            db.commit()
            return notificacao_to_dict(n)
        finally:
            db.close()

    def marcar_como_lida(self, notificacao_id: int, user_id: int | None = None) -> Optional[dict[str, Any]]:
        return self._transition(notificacao_id, user_id, "marcar_como_lida")

    def marcar_como_enviada(self, notificacao_id: int, user_id: int | None = None) -> Optional[dict[str, Any]]:
        return self._transition(notificacao_id, user_id, "marcar_como_enviada")

    def cancelar(self, notificacao_id: int, user_id: int | None = None) -> Optional[dict[str, Any]]:
        return self._transition(notificacao_id, user_id, "cancelar")

    def excluir(self, notificacao_id: int, user_id: int | None = None) -> bool:
        db = get_session()
        try:
            n = db.get(Notificacao, notificacao_id)
            if n is None or (user_id is not None and n.user_id != user_id):
                return False
            db.delete(n)
            db.commit()
            return True
        finally:
            db.close()

    def enviar_pendentes(self, limit: int = 100) -> int:
        """Mark up to `limit` pending notifications (oldest first) as sent.

        Delivery channels (email / SMS / push) plug in here; today sending is
        the state change itself.
        """
        db = get_session()
        sent = 0
        try:
            rows = db.execute(
                select(Notificacao)
                .where(Notificacao.status == "pendente")
                .order_by(Notificacao.data_criacao.asc(), Notificacao.id.asc())
                .limit(limit)
            ).scalars().all()
            now = utcnow()
            for n in rows:
                n.status = "enviada"
                n.data_envio = now
                sent += 1
            db.commit()
        finally:
            db.close()
        if sent:
            logger.info("Dispatched %s pending notifications", sent)
            metrics.increment("notificacoes.sent")
        return sent

    # ---- automatic processing ----
    def processar_notificacoes(self, hoje: date | None = None) -> dict[str, Any]:
        hoje = hoje or utcnow().date()
        detalhes = {
            "pagamentos_marcados_atrasados": 0,
            "vencimentos_proximos": 0,
            "pagamentos_atrasados": 0,
            "contratos_vencendo": 0,
            "lembretes_cobranca": 0,
        }
        db = get_session()
        try:
            detalhes["pagamentos_marcados_atrasados"] = self._marcar_atrasados(db, hoje)
            configs = db.execute(
                select(ConfiguracaoNotificacao)
                .where(ConfiguracaoNotificacao.ativo.is_(True))
                .order_by(ConfiguracaoNotificacao.id)
            ).scalars().all()
            for cfg in configs:
                if cfg.notificar_vencimento_proximo:
                    detalhes["vencimentos_proximos"] += self._vencimentos_proximos(db, cfg, hoje)
                if cfg.notificar_pagamento_atrasado:
                    detalhes["pagamentos_atrasados"] += self._pagamentos_atrasados(db, cfg, hoje)
                    detalhes["lembretes_cobranca"] += self._lembretes_cobranca(db, cfg, hoje)
                if cfg.notificar_contrato_vencendo:
                    detalhes["contratos_vencendo"] += self._contratos_vencendo(db, cfg, hoje)
            db.commit()
        finally:
            db.close()
        criadas = sum(v for k, v in detalhes.items() if k != "pagamentos_marcados_atrasados")
        logger.info("Processed due dates for %s: %s notifications created %s", hoje, criadas, detalhes)
        return {"data_referencia": hoje.isoformat(), "notificacoes_criadas": criadas, "detalhes": detalhes}

    def _marcar_atrasados(self, db, hoje: date) -> int:
        rows = db.execute(
            select(Pagamento).where(Pagamento.status == "pendente", Pagamento.data_vencimento < hoje)
        ).scalars().all()
        for p in rows:
            p.status = "atrasado"
        db.flush()
        return len(rows)

    def _count(self, db, tipo: str, user_id: int, *, pagamento_id=None, contrato_id=None, desde=None) -> int:
        stmt = select(func.count()).select_from(Notificacao).where(Notificacao.tipo == tipo, Notificacao.user_id == user_id)
        if pagamento_id is not None:
            stmt = stmt.where(Notificacao.pagamento_id == str(pagamento_id))
        if contrato_id is not None:
            stmt = stmt.where(Notificacao.contrato_id == str(contrato_id))
        if desde is not None:
            stmt = stmt.where(Notificacao.data_criacao >= desde)
        return int(db.execute(stmt).scalar_one())

    def _add(self, db, cfg: ConfiguracaoNotificacao, tipo: str, **fields: Any) -> int:
        db.add(Notificacao(tipo=tipo, status="pendente", data_criacao=utcnow(), user_id=cfg.user_id, **fields))
        db.flush()
        metrics.increment("notificacoes.created", {"tipo": tipo})
        return 1

    def _vencimentos_proximos(self, db, cfg: ConfiguracaoNotificacao, hoje: date) -> int:
        limite = hoje + timedelta(days=cfg.dias_aviso_vencimento)
        rows = db.execute(
            select(Pagamento).where(
                Pagamento.status == "pendente",
                Pagamento.data_vencimento >= hoje,
                Pagamento.data_vencimento <= limite,
            )
        ).scalars().all()
        created = 0
        for p in rows:
            if self._count(db, "vencimento_proximo", cfg.user_id, pagamento_id=p.id):
                continue
            dias = (p.data_vencimento - hoje).days
            created += self._add(
                db,
                cfg,
                "vencimento_proximo",
                titulo="Vencimento Próximo",
                mensagem=f"O aluguel do imóvel {_endereco(p.contrato)} vence em {dias} dia(s). Valor: {_brl(p.valor_devido)}",
                prioridade="alta" if dias <= 1 else "media",
                contrato_id=str(p.contrato_id),
                pagamento_id=str(p.id),
                metadados={"dias_restantes": dias, "valor_devido": p.valor_devido, "endereco_imovel": _endereco(p.contrato)},
            )
        return created

    def _atrasados(self, db, hoje: date) -> list[Pagamento]:
        return list(
            db.execute(
                select(Pagamento)
                .where(Pagamento.status == "atrasado", Pagamento.data_vencimento < hoje)
                .order_by(Pagamento.data_vencimento, Pagamento.id)
            ).scalars().all()
        )

    def _pagamentos_atrasados(self, db, cfg: ConfiguracaoNotificacao, hoje: date) -> int:
        """One notice per payment every `dias_lembrete_atraso` days, at most `max_lembretes_atraso` in total."""
        desde = datetime.combine(hoje - timedelta(days=cfg.dias_lembrete_atraso), time.min, tzinfo=UTC)
        created = 0
        for p in self._atrasados(db, hoje):
            if self._count(db, "pagamento_atrasado", cfg.user_id, pagamento_id=p.id, desde=desde):
                continue
            if self._count(db, "pagamento_atrasado", cfg.user_id, pagamento_id=p.id) >= cfg.max_lembretes_atraso:
                continue
            dias = (hoje - p.data_vencimento).days
            total = _valor_total(p)
            created += self._add(
                db,
                cfg,
                "pagamento_atrasado",
                titulo="Pagamento Atrasado",
                mensagem=f"O aluguel do imóvel {_endereco(p.contrato)} está atrasado há {dias} dia(s). Valor total: {_brl(total)}",
                prioridade="urgente" if dias > 30 else "alta",
                contrato_id=str(p.contrato_id),
                pagamento_id=str(p.id),
                metadados={
                    "dias_atraso": dias,
                    "valor_devido": p.valor_devido,
                    "valor_juros": p.valor_juros,
                    "valor_multa": p.valor_multa,
                    "valor_total": total,
                    "endereco_imovel": _endereco(p.contrato),
                    "nome_inquilino": _inquilino(p.contrato),
                },
            )
        return created

    def _lembretes_cobranca(self, db, cfg: ConfiguracaoNotificacao, hoje: date) -> int:
        """Reminder N is due once the payment is N * `dias_lembrete_atraso` days late."""
        created = 0
        for p in self._atrasados(db, hoje):
            dias = (hoje - p.data_vencimento).days
            enviados = self._count(db, "lembrete_cobranca", cfg.user_id, pagamento_id=p.id)
            devidos = min(dias // cfg.dias_lembrete_atraso, cfg.max_lembretes_atraso)
            if enviados >= devidos:
                continue
            total = _valor_total(p)
            created += self._add(
                db,
                cfg,
                "lembrete_cobranca",
                titulo=f"Lembrete de Cobrança - {dias} dias",
                mensagem=f"Lembrete: o pagamento do imóvel {_endereco(p.contrato)} continua em atraso. Valor total: {_brl(total)}",
                prioridade="alta",
                contrato_id=str(p.contrato_id),
                pagamento_id=str(p.id),
                metadados={
                    "dias_atraso": dias,
                    "numero_lembrete": enviados + 1,
                    "valor_total": total,
                    "endereco_imovel": _endereco(p.contrato),
                    "nome_inquilino": _inquilino(p.contrato),
                },
            )
        return created

    def _contratos_vencendo(self, db, cfg: ConfiguracaoNotificacao, hoje: date) -> int:
        limite = hoje + timedelta(days=cfg.dias_aviso_contrato_vencendo)
        rows = db.execute(
            select(Contrato).where(Contrato.status == "ativo", Contrato.data_fim >= hoje, Contrato.data_fim <= limite)
        ).scalars().all()
        created = 0
        for c in rows:
            if self._count(db, "contrato_vencendo", cfg.user_id, contrato_id=c.id):
                continue
            dias = (c.data_fim - hoje).days
            created += self._add(
                db,
                cfg,
                "contrato_vencendo",
                titulo="Contrato Vencendo",
                mensagem=f"O contrato do imóvel {_endereco(c)} vence em {dias} dia(s). Inquilino: {_inquilino(c) or 'N/A'}",
                prioridade="alta" if dias <= 7 else "media",
                contrato_id=str(c.id),
                metadados={
                    "dias_restantes": dias,
                    "data_fim": c.data_fim.isoformat(),
                    "endereco_imovel": _endereco(c),
                    "nome_inquilino": _inquilino(c),
                    "valor_aluguel": c.valor_aluguel,
                },
            )
        return created

    # ---- settings ----
    def obter_configuracao(self, user_id: int) -> dict[str, Any]:
        """Return the user's settings, creating the defaults on first access."""
        db = get_session()
        try:
            cfg = db.execute(
                select(ConfiguracaoNotificacao).where(ConfiguracaoNotificacao.user_id == user_id)
            ).scalars().first()
            if cfg is None:
                cfg = ConfiguracaoNotificacao(
                    user_id=user_id,
                    dias_aviso_vencimento=3,
                    notificar_vencimento_proximo=True,
                    notificar_pagamento_atrasado=True,
                    dias_lembrete_atraso=7,
                    max_lembretes_atraso=3,
                    dias_aviso_contrato_vencendo=30,
                    notificar_contrato_vencendo=True,
                    ativo=True,
                )
                db.add(cfg)
                db.commit()
                db.refresh(cfg)
            return configuracao_to_dict(cfg)
        finally:
            db.close()

    def atualizar_configuracao(self, user_id: int, values: dict[str, Any]) -> dict[str, Any]:
        self.obter_configuracao(user_id)
        db = get_session()
        try:
            cfg = db.execute(
                select(ConfiguracaoNotificacao).where(ConfiguracaoNotificacao.user_id == user_id)
            ).scalars().one()
            for name in CONFIG_FIELDS:
                if name in values:
                    setattr(cfg, name, values[name])
            db.commit()
            db.refresh(cfg)
            return configuracao_to_dict(cfg)
        finally:
            db.close()


__all__ = [
    "InvalidTransition",
    "NotificacaoFilters",
    "NotificacaoService",
    "configuracao_to_dict",
    "notificacao_to_dict",
]
