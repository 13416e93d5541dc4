"""Public (unauthenticated) catalog API for the website.

Only active imóveis in active cities are visible; client data is never
exposed.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from sqlalchemy import func, or_, select

from .db import get_session
from .errors import BadRequestError, NotFoundError
from .imoveis_api import serialize_imovel
from .models import Cidade, Imovel
from .pagination import make_page_response, offset_of, parse_page_params

bp = Blueprint("public_api", __name__, url_prefix="/api/public")


def _visible():
    return (
        select(Imovel)
        .outerjoin(Cidade, Imovel.cidade_id == Cidade.id)
        .where(Imovel.ativo.is_(True), or_(Imovel.cidade_id.is_(None), Cidade.ativa.is_(True)))
    )


@bp.get("/cidades")
def cidades() -> ResponseReturnValue:
    db = get_session()
    try:
        rows = db.execute(select(Cidade).where(Cidade.ativa.is_(True)).order_by(Cidade.nome.asc())).scalars().all()
        return jsonify({"ok": True, "items": [{"id": c.id, "nome": c.nome} for c in rows]})
    finally:
        db.close()


@bp.get("/imoveis")
def imoveis() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=12, max_limit=50)
    stmt = _visible()
    if request.args.get("tipo"):
        stmt = stmt.where(Imovel.tipo == request.args["tipo"])
    if request.args.get("finalidade"):
        stmt = stmt.where(Imovel.finalidade == request.args["finalidade"])
    if request.args.get("cidade_id"):
        try:
            stmt = stmt.where(Imovel.cidade_id == int(request.args["cidade_id"]))
        except ValueError as e:
            raise BadRequestError("Parâmetro inválido: cidade_id") from e
    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(Imovel.nome).like(like),
                func.lower(func.coalesce(Imovel.descricao, "")).like(like),
                func.lower(func.coalesce(Imovel.bairro, "")).like(like),
            )
        )
    db = get_session()
    try:
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = db.execute(
            stmt.order_by(Imovel.destaque.desc(), Imovel.created_at.desc(), Imovel.id.desc())
            .limit(page_req["limit"])
            .offset(offset_of(page_req))
        ).unique().scalars().all()
        items = [serialize_imovel(i, include_cliente=False) for i in rows]
        return jsonify(make_page_response(items, page_req, int(total)))
    finally:
        db.close()


@bp.get("/imoveis/destaque")
def destaques() -> ResponseReturnValue:
    try:
        limit = min(max(int(request.args.get("limit") or 6), 1), 24)
    except ValueError as e:
        raise BadRequestError("Parâmetro inválido: limit") from e
    db = get_session()
    try:
        rows = db.execute(
            _visible().where(Imovel.destaque.is_(True)).order_by(Imovel.created_at.desc(), Imovel.id.desc()).limit(limit)
        ).unique().scalars().all()
        return jsonify({"ok": True, "items": [serialize_imovel(i, include_cliente=False) for i in rows]})
    finally:
        db.close()


@bp.get("/imoveis/<int:imovel_id>")
def imovel(imovel_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        i = db.execute(_visible().where(Imovel.id == imovel_id)).unique().scalars().first()
        if i is None:
            raise NotFoundError("Imóvel não encontrado")
        return jsonify({"ok": True, "item": serialize_imovel(i, include_cliente=False)})
    finally:
        db.close()
