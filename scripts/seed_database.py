"""Seed a development database with demo cities, clients and properties.

Idempotent: rows are matched by name and only inserted when missing.
`--reset` wipes catalogue data (not users) first.
"""

from __future__ import annotations

import argparse
import os
import sys

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

CIDADES = ["Florianópolis", "São José", "Palhoça", "Biguaçu"]

CLIENTES = [
    {"nome": "Maria Souza", "email": "maria.souza@example.com", "telefone": "(48) 99999-1111"},
    {"nome": "João Pereira", "email": "joao.pereira@example.com", "telefone": "(48) 3333-2222"},
]

IMOVEIS = [
    {
        "nome": "Apartamento 2 quartos no Centro",
        "tipo": "Apartamento",
        "finalidade": "aluguel",
        "valor_aluguel": 2500.0,
        "quartos": 2,
        "banheiros": 1,
        "area_total": 68.0,
        "bairro": "Centro",
        "cidade": "Florianópolis",
        "cliente": "Maria Souza",
        "destaque": True,
        "caracteristicas": ["Sacada", "Garagem"],
        "comodidades": ["Portaria 24h"],
    },
    {
        "nome": "Casa com piscina em Campeche",
        "tipo": "Casa",
        "finalidade": "ambos",
        "valor_venda": 950000.0,
        "valor_aluguel": 5200.0,
        "quartos": 3,
        "banheiros": 2,
        "area_total": 180.0,
        "bairro": "Campeche",
        "cidade": "Florianópolis",
        "cliente": "João Pereira",
        "destaque": True,
        "caracteristicas": ["Piscina", "Churrasqueira"],
        "comodidades": [],
    },
    {
        "nome": "Terreno em Kobrasol",
        "tipo": "Terreno",
        "finalidade": "venda",
        "valor_venda": 320000.0,
        "area_total": 360.0,
        "bairro": "Kobrasol",
        "cidade": "São José",
        "caracteristicas": [],
        "comodidades": [],
    },
]


def _reset(db) -> None:
    from sqlalchemy import delete

    from imobiliaria.models import Cidade, Cliente, Imovel, ImovelImagem

    for model in (ImovelImagem, Imovel, Cliente, Cidade):
        db.execute(delete(model))
    db.commit()


def seed(reset: bool = False) -> dict[str, int]:
    from sqlalchemy import select

    from imobiliaria.db import get_session
    from imobiliaria.models import Cidade, Cliente, Imovel

    created = {"cidades": 0, "clientes": 0, "imoveis": 0}
    db = get_session()
    try:
        if reset:
            _reset(db)
        cidades: dict[str, Cidade] = {}
        for nome in CIDADES:
            c = db.execute(select(Cidade).where(Cidade.nome == nome)).scalar_one_or_none()
            if c is None:
                c = Cidade(nome=nome, ativa=True)
                db.add(c)
                created["cidades"] += 1
            cidades[nome] = c
        clientes: dict[str, Cliente] = {}
        for row in CLIENTES:
            cl = db.execute(select(Cliente).where(Cliente.nome == row["nome"])).scalar_one_or_none()
            if cl is None:
                cl = Cliente(**row)
                db.add(cl)
                created["clientes"] += 1
            clientes[row["nome"]] = cl
        db.flush()
        for row in IMOVEIS:
            data = dict(row)
            cidade = cidades[data.pop("cidade")]
            cliente_nome = data.pop("cliente", None)
            if db.execute(select(Imovel).where(Imovel.nome == data["nome"])).scalar_one_or_none() is not None:
                continue
            db.add(
                Imovel(
                    cidade_id=cidade.id,
                    cliente_id=clientes[cliente_nome].id if cliente_nome else None,
                    **data,
                )
            )
            created["imoveis"] += 1
        db.commit()
        return created
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Seed demo catalogue data")
    p.add_argument("--reset", action="store_true", help="delete cities, clients and properties first")
    p.add_argument("--create-tables", action="store_true", help="create missing tables first (dev only)")
    args = p.parse_args(argv)

    from imobiliaria import create_app
    from imobiliaria.db import create_all

    app = create_app()
    with app.app_context():
        if args.create_tables:
            create_all()
        created = seed(reset=args.reset)
    print("seeded:", ", ".join(f"{k}={v}" for k, v in created.items()))
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
