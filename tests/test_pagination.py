from __future__ import annotations

import pytest

from imobiliaria.pagination import PaginationError, make_page_response, offset_of, parse_page_params


def test_pagination_defaults():
    req = parse_page_params({})
    assert req["page"] == 1
    assert req["limit"] == 10
    assert req["order"] == "desc"
    assert req["order_by"] is None


def test_pagination_custom_params():
    req = parse_page_params({"page": "3", "limit": "5", "orderBy": "nome", "orderDirection": "ASC"})
    assert (req["page"], req["limit"], req["order_by"], req["order"]) == (3, 5, "nome", "asc")
    assert offset_of(req) == 10


def test_pagination_caps_limit():
    assert parse_page_params({"limit": "500"})["limit"] == 100
    assert parse_page_params({"limit": "500"}, max_limit=50)["limit"] == 50


def test_unknown_direction_falls_back():
    assert parse_page_params({"orderDirection": "sideways"}, default_order="asc")["order"] == "asc"


@pytest.mark.parametrize("args", [{"page": "0"}, {"limit": "0"}, {"page": "x"}, {"limit": "1.5"}])
def test_pagination_invalid(args):
    with pytest.raises(PaginationError):
        parse_page_params(args)


def test_page_response_total_pages():
    req = parse_page_params({"page": "2", "limit": "4"})
    resp = make_page_response(["e", "f"], req, total=6)
    assert resp["ok"] is True
    assert resp["items"] == ["e", "f"]
    assert resp["pagination"] == {"page": 2, "limit": 4, "total": 6, "totalPages": 2}
    assert make_page_response([], req, total=0)["pagination"]["totalPages"] == 0
