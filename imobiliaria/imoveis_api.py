"""Imóveis API: filtered listing, CRUD and image management."""

from __future__ import annotations

import logging
from typing import Any

from flask import Blueprint, jsonify, request
from flask.typing import ResponseReturnValue
from sqlalchemy import func, or_, select

from .app_authz import require_permission
from .app_sessions import require_session
from .db import get_session
from .errors import BadRequestError, ConflictError, NotFoundError, ValidationError
from .images import URL_PREFIX, ImageStorage, store_uploads
from .models import Cidade, Cliente, Contrato, Imovel, ImovelImagem, as_utc
from .pagination import make_page_response, offset_of, parse_page_params
from .validation import (
    IMOVEL_RULES,
    as_int,
    ensure_valid,
    json_body,
    sanitize_input,
    validate_image_count,
    validate_imovel,
    validate_imovel_update,
)

logger = logging.getLogger("imobiliaria.imoveis")

bp = Blueprint("imoveis_api", __name__, url_prefix="/api/imoveis")

FIELDS = (
    "nome",
    "tipo",
    "finalidade",
    "valor_venda",
    "valor_aluguel",
    "descricao",
    "quartos",
    "banheiros",
    "area_total",
    "caracteristicas",
    "comodidades",
    "endereco_completo",
    "cidade_id",
    "bairro",
    "destaque",
    "cliente_id",
    "ativo",
)
_NUMERIC = {"valor_venda": float, "valor_aluguel": float, "area_total": float, "quartos": as_int, "banheiros": as_int}
_IDS = ("cidade_id", "cliente_id")


def serialize_imagem(img: ImovelImagem) -> dict[str, Any]:
    return {
        "id": img.id,
        "url": img.url,
        "url_thumb": img.url_thumb,
        "ordem": img.ordem,
        "tipo": img.tipo,
    }


def serialize_imovel(i: Imovel, *, include_cliente: bool = True) -> dict[str, Any]:
    data: dict[str, Any] = {"id": i.id}
    for name in FIELDS:
        data[name] = getattr(i, name)
    data["caracteristicas"] = list(i.caracteristicas or [])
    data["comodidades"] = list(i.comodidades or [])
    data["cidade"] = {"id": i.cidade.id, "nome": i.cidade.nome} if i.cidade else None
    if include_cliente:
        data["user_id"] = i.user_id
        data["cliente"] = {"id": i.cliente.id, "nome": i.cliente.nome} if i.cliente else None
    else:
        data.pop("cliente_id", None)
    data["imagens"] = [serialize_imagem(img) for img in sorted(i.imagens, key=lambda m: (m.ordem, m.id))]
    for name in ("created_at", "updated_at"):
        value = as_utc(getattr(i, name))
        data[name] = value.isoformat() if value else None
    return data


def _coerce(data: dict[str, Any]) -> dict[str, Any]:
    """Normalize already-validated values to column types."""
    out: dict[str, Any] = {}
    for name in FIELDS:
        if name not in data:
            continue
        value = data[name]
        if name in _NUMERIC:
            value = _NUMERIC[name](value) if value not in (None, "") else None
            if name in ("quartos", "banheiros") and value is None:
                value = 0
        elif name in _IDS:
            value = as_int(value) if value not in (None, "") else None
        elif name in ("caracteristicas", "comodidades"):
            value = list(value or [])
        elif name in ("destaque", "ativo"):
            value = bool(value)
        elif isinstance(value, str):
            value = value or None
        out[name] = value
    return out


def _check_relationships(db, data: dict[str, Any]) -> None:
    errors = []
    if data.get("cidade_id") and db.get(Cidade, as_int(data["cidade_id"])) is None:
        errors.append({"field": "cidade_id", "message": "Cidade não encontrada", "code": "NOT_FOUND"})
    if data.get("cliente_id") and db.get(Cliente, as_int(data["cliente_id"])) is None:
        errors.append({"field": "cliente_id", "message": "Cliente não encontrado", "code": "NOT_FOUND"})
    ensure_valid(errors, detail="Verifique se a cidade e cliente selecionados existem")


def _flag(raw: str | None) -> bool | None:
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes", "sim")


def _int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise BadRequestError(f"Parâmetro inválido: {name}") from e


def _get_imovel(db, imovel_id: int) -> Imovel:
    i = db.get(Imovel, imovel_id)
    if i is None:
        raise NotFoundError("Imóvel não encontrado")
    return i


@bp.get("/")
@require_permission("properties.view")
def list_imoveis() -> ResponseReturnValue:
    page_req = parse_page_params(request.args, default_limit=10)
    ativo_raw = request.args.get("ativo")
    db = get_session()
    try:
        stmt = select(Imovel)
        if request.args.get("tipo"):
            stmt = stmt.where(Imovel.tipo == request.args["tipo"])
        if request.args.get("finalidade"):
            stmt = stmt.where(Imovel.finalidade == request.args["finalidade"])
        cidade_id = _int_arg("cidade_id")
        if cidade_id is not None:
            stmt = stmt.where(Imovel.cidade_id == cidade_id)
        destaque = _flag(request.args.get("destaque"))
        if destaque is not None:
            stmt = stmt.where(Imovel.destaque.is_(destaque))
        # ativo defaults to true; "all" lists both
        if ativo_raw != "all":
            stmt = stmt.where(Imovel.ativo.is_(_flag(ativo_raw) is not False))
        search = (request.args.get("search") or "").strip()
        if search:
            like = f"%{search.lower()}%"
            stmt = stmt.where(
                or_(func.lower(Imovel.nome).like(like), func.lower(func.coalesce(Imovel.descricao, "")).like(like))
            )
        total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        rows = db.execute(
            stmt.order_by(Imovel.created_at.desc(), Imovel.id.desc()).limit(page_req["limit"]).offset(offset_of(page_req))
        ).unique().scalars().all()
        return jsonify(make_page_response([serialize_imovel(i) for i in rows], page_req, int(total)))
    finally:
        db.close()


@bp.post("/")
@require_permission("properties.create")
def create_imovel() -> ResponseReturnValue:
    user = require_session()
    data = sanitize_input(json_body())
    ensure_valid(validate_imovel(data))
    db = get_session()
    try:
        _check_relationships(db, data)
        values = _coerce(data)
        values.setdefault("ativo", True)
        values.setdefault("destaque", False)
        i = Imovel(user_id=user["id"], **values)
        db.add(i)
        db.commit()
        db.refresh(i)
        logger.info("imovel created id=%s by user=%s", i.id, user["id"])
        return jsonify({"ok": True, "item": serialize_imovel(i)}), 201
    finally:
        db.close()


@bp.get("/<int:imovel_id>")
@require_permission("properties.view")
def get_imovel(imovel_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        return jsonify({"ok": True, "item": serialize_imovel(_get_imovel(db, imovel_id))})
    finally:
        db.close()


@bp.put("/<int:imovel_id>")
@require_permission("properties.edit")
def update_imovel(imovel_id: int) -> ResponseReturnValue:
    data = sanitize_input(json_body())
    changes = {k: v for k, v in data.items() if k in FIELDS}
    if not changes:
        raise BadRequestError("Nenhum campo para atualizar")
    db = get_session()
    try:
        i = _get_imovel(db, imovel_id)
        current = {name: getattr(i, name) for name in IMOVEL_RULES if hasattr(i, name)}
        ensure_valid(validate_imovel_update(changes, current))
        _check_relationships(db, changes)
        for name, value in _coerce(changes).items():
            setattr(i, name, value)
        db.commit()
        db.refresh(i)
        return jsonify({"ok": True, "item": serialize_imovel(i)})
    finally:
        db.close()


def _file_paths(img: ImovelImagem) -> list[str]:
    paths = [img.storage_path]
    if img.url_thumb and img.url_thumb.startswith(URL_PREFIX):
        paths.append(img.url_thumb[len(URL_PREFIX):])
    return paths


def _remove_files(storage: ImageStorage, paths: list[str]) -> None:
    for rel in paths:
        storage.delete(rel)


@bp.delete("/<int:imovel_id>")
@require_permission("properties.delete")
def delete_imovel(imovel_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        i = _get_imovel(db, imovel_id)
        contratos = db.execute(
            select(func.count()).select_from(Contrato).where(Contrato.imovel_id == imovel_id)
        ).scalar_one()
        if contratos:
            raise ConflictError(
                "Não é possível excluir o imóvel pois existem contratos vinculados a ele",
                contratos_vinculados=int(contratos),
            )
        paths = [p for img in i.imagens for p in _file_paths(img)]
        db.delete(i)
        db.commit()
        # files go only once the rows are gone
        _remove_files(ImageStorage.from_app(), paths)
        return jsonify({"ok": True, "message": "Imóvel excluído com sucesso"})
    finally:
        db.close()


# ---- images ----


@bp.post("/<int:imovel_id>/imagens")
@require_permission("properties.edit")
def upload_imagens(imovel_id: int) -> ResponseReturnValue:
    files = [f for f in request.files.getlist("images") + request.files.getlist("images[]") if f and f.filename]
    ensure_valid(validate_image_count(len(files)))
    db = get_session()
    try:
        i = _get_imovel(db, imovel_id)
        storage = ImageStorage.from_app()
        stored, errors = store_uploads(imovel_id, files, storage)
        if not stored:
            raise ValidationError(errors, detail="Nenhuma imagem válida foi enviada")
        next_ordem = max((img.ordem for img in i.imagens), default=-1) + 1
        created = []
        for offset, s in enumerate(stored):
            img = ImovelImagem(
                imovel_id=i.id,
                url=s.url,
                url_thumb=s.url_thumb,
                storage_path=s.storage_path,
                ordem=next_ordem + offset,
                tipo=s.tipo,
            )
            db.add(img)
            created.append(img)
        try:
            db.commit()
        except Exception:
            db.rollback()
            _remove_files(storage, [p for s in stored for p in (s.storage_path, s.thumb_path)])
            logger.warning("image upload rolled back for imovel=%s", imovel_id)
            raise
        return jsonify(
            {
                "ok": True,
                "items": [serialize_imagem(img) for img in created],
                "errors": errors,
                "message": f"{len(created)} imagem(ns) enviada(s) com sucesso",
            }
        ), 201
    finally:
        db.close()


@bp.delete("/<int:imovel_id>/imagens/<int:imagem_id>")
@require_permission("properties.edit")
def delete_imagem(imovel_id: int, imagem_id: int) -> ResponseReturnValue:
    db = get_session()
    try:
        img = db.get(ImovelImagem, imagem_id)
        if img is None or img.imovel_id != imovel_id:
            raise NotFoundError("Imagem não encontrada")
        paths = _file_paths(img)
        db.delete(img)
        db.commit()
        _remove_files(ImageStorage.from_app(), paths)
        return jsonify({"ok": True, "message": "Imagem removida com sucesso"})
    finally:
        db.close()


@bp.put("/<int:imovel_id>/imagens/ordem")
@require_permission("properties.edit")
def reorder_imagens(imovel_id: int) -> ResponseReturnValue:
    data = json_body()
    ordem = data.get("ordem")
    if not isinstance(ordem, list) or not all(isinstance(x, int) and not isinstance(x, bool) for x in ordem):
        raise ValidationError.single("ordem", "Informe a lista de ids das imagens", "INVALID_FORMAT")
    db = get_session()
    try:
        i = _get_imovel(db, imovel_id)
        by_id = {img.id: img for img in i.imagens}
        if sorted(ordem) != sorted(by_id):
            raise ValidationError.single("ordem", "A lista deve conter exatamente as imagens do imóvel", "INVALID_FORMAT")
        for position, img_id in enumerate(ordem):
            by_id[img_id].ordem = position
        db.commit()
        return jsonify({"ok": True, "items": [serialize_imagem(by_id[x]) for x in ordem]})
    finally:
        db.close()
