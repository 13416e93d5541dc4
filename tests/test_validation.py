from imobiliaria.validation import (
    CLIENTE_RULES,
    IMOVEL_RULES,
    as_int,
    group_by_field,
    sanitize_input,
    validate_change_password,
    validate_cidade,
    validate_configuracao_notificacao,
    validate_create_user,
    validate_image_count,
    validate_image_dimensions,
    validate_image_file,
    validate_imovel,
    validate_imovel_update,
    validate_object,
    validate_partial,
)


def _codes(errors, field=None):
    return {e["code"] for e in errors if field is None or e["field"] == field}


def _imovel(**over):
    data = {"nome": "Casa na praia", "tipo": "Casa", "finalidade": "venda", "valor_venda": 500000}
    data.update(over)
    return data


def test_valid_imovel_has_no_errors():
    assert validate_imovel(_imovel()) == []


def test_imovel_required_and_choices():
    errors = validate_imovel({"finalidade": "troca"})
    assert "REQUIRED" in _codes(errors, "nome")
    assert "REQUIRED" in _codes(errors, "tipo")
    assert "INVALID_OPTION" in _codes(errors, "finalidade")


def test_imovel_price_depends_on_finalidade():
    assert _codes(validate_imovel(_imovel(valor_venda=None)), "valor_venda") == {"REQUIRED"}
    assert _codes(validate_imovel(_imovel(finalidade="aluguel", valor_venda=None)), "valor_aluguel") == {"REQUIRED"}
    errors = validate_imovel(_imovel(finalidade="ambos", valor_venda=0))
    assert _codes(errors, "valor_venda") == {"REQUIRED_ONE_VALUE"}
    assert _codes(errors, "valor_aluguel") == {"REQUIRED_ONE_VALUE"}
    assert validate_imovel(_imovel(finalidade="ambos", valor_venda=None, valor_aluguel=1800)) == []


def test_imovel_numeric_bounds():
    errors = validate_imovel(_imovel(quartos=25, banheiros="dois", area_total=0))
    assert _codes(errors, "quartos") == {"MAX_VALUE"}
    assert _codes(errors, "banheiros") == {"INVALID_NUMBER"}
    assert _codes(errors, "area_total") == {"MIN_VALUE"}


def test_imovel_update_merges_current_for_price_rules():
    current = {"finalidade": "venda", "valor_venda": 100000, "valor_aluguel": None}
    assert validate_imovel_update({"nome": "Novo nome bonito"}, current) == []
    errors = validate_imovel_update({"finalidade": "aluguel"}, current)
    assert _codes(errors, "valor_aluguel") == {"REQUIRED"}
    assert validate_imovel_update({"finalidade": "aluguel", "valor_aluguel": 900}, current) == []


def test_partial_only_checks_present_keys():
    assert validate_partial({"bairro": "Centro"}, IMOVEL_RULES) == []
    assert _codes(validate_partial({"nome": "ab"}, IMOVEL_RULES)) == {"MIN_LENGTH"}


def test_cliente_formats():
    ok = {"nome": "Ana", "email": "ana@example.com", "telefone": "(48) 99999-1111", "cpf_cnpj": "123.456.789-09"}
    assert validate_object(ok, CLIENTE_RULES) == []
    bad = {"nome": "A", "email": "ana@", "telefone": "48999991111", "cpf_cnpj": "12345678909"}
    errors = validate_object(bad, CLIENTE_RULES)
    assert _codes(errors, "nome") == {"MIN_LENGTH"}
    assert _codes(errors, "email") == {"INVALID_EMAIL"}
    assert _codes(errors, "telefone") == {"INVALID_FORMAT"}
    assert _codes(errors, "cpf_cnpj") == {"INVALID_FORMAT"}
    cnpj = dict(ok, cpf_cnpj="12.345.678/0001-90", telefone="(48) 3333-2222")
    assert validate_object(cnpj, CLIENTE_RULES) == []


def test_cidade_duplicate_via_existing():
    assert _codes(validate_cidade({"nome": "Palhoça"}, existing_names=["Palhoça"])) == {"DUPLICATE"}
    assert _codes(validate_cidade({"nome": "X", "ativa": "sim"})) == {"MIN_LENGTH", "INVALID_FORMAT"}


def test_create_user_rules():
    data = {"username": "novo_user", "email": "n@example.com", "password": "Str0ng!Pass", "full_name": "Novo"}
    assert validate_create_user(data) == []
    errors = validate_create_user(dict(data, username="no spaces", password="fraca", confirmPassword="outra"))
    assert "INVALID_FORMAT" in _codes(errors, "username")
    assert "MIN_LENGTH" in _codes(errors, "password")
    assert _codes(errors, "confirmPassword") == {"PASSWORDS_DONT_MATCH"}
    weak = validate_create_user(dict(data, password="semnumeros!"))
    assert _codes(weak, "password") == {"WEAK_PASSWORD"}
    assert _codes(validate_create_user(dict(data, role="root")), "role") == {"INVALID_OPTION"}


def test_change_password_rules():
    assert validate_change_password({"currentPassword": "Old1!pass", "newPassword": "N3w!Passw", "confirmPassword": "N3w!Passw"}) == []
    errors = validate_change_password({"currentPassword": "Same1!pw", "newPassword": "Same1!pw", "confirmPassword": "x"})
    assert "SAME_PASSWORD" in _codes(errors, "newPassword")
    assert _codes(errors, "confirmPassword") == {"PASSWORDS_DONT_MATCH"}
    assert _codes(validate_change_password({})) == {"REQUIRED"}


def test_configuracao_ranges():
    assert validate_configuracao_notificacao({"dias_aviso_vencimento": 5, "ativo": False}) == []
    errors = validate_configuracao_notificacao({"max_lembretes_atraso": 11, "dias_lembrete_atraso": 0})
    assert _codes(errors, "max_lembretes_atraso") == {"MAX_VALUE"}
    assert _codes(errors, "dias_lembrete_atraso") == {"MIN_VALUE"}


def test_image_rules():
    assert _codes(validate_image_count(0)) == {"REQUIRED"}
    assert _codes(validate_image_count(11)) == {"TOO_MANY_FILES"}
    assert validate_image_count(10) == []
    assert _codes(validate_image_file("doc.pdf", "application/pdf", 10)) == {"INVALID_FILE_TYPE"}
    assert _codes(validate_image_file("big.jpg", "image/jpeg", 6 * 1024 * 1024)) == {"FILE_TOO_LARGE"}
    assert _codes(validate_image_file("empty.png", "image/png", 0)) == {"EMPTY_FILE"}
    assert _codes(validate_image_dimensions(100, 100, "tiny.png")) == {"MIN_WIDTH", "MIN_HEIGHT"}
    assert _codes(validate_image_dimensions(5000, 3500, "huge.png")) == {"MAX_WIDTH", "MAX_HEIGHT"}


def test_sanitize_and_group():
    assert sanitize_input({"a": "  x ", "b": [" y "], "c": 3}) == {"a": "x", "b": ["y"], "c": 3}
    grouped = group_by_field([
        {"field": "nome", "message": "m1", "code": "A"},
        {"field": "nome", "message": "m2", "code": "B"},
    ])
    assert grouped == {"nome": ["m1", "m2"]}


def test_as_int_handles_numeric_strings():
    assert as_int("2") == 2
    assert as_int("2.0") == 2
    assert as_int(3.0) == 3
    assert as_int(7) == 7


def test_imovel_free_text_must_be_string():
    base = {"nome": "Casa no centro", "tipo": "Casa", "finalidade": "venda", "valor_venda": 1}
    assert _codes(validate_imovel({**base, "descricao": ["x"]}), "descricao") == {"INVALID_FORMAT"}
    assert _codes(validate_imovel({**base, "endereco_completo": 12}), "endereco_completo") == {"INVALID_FORMAT"}
    assert validate_imovel({**base, "descricao": "Ampla", "endereco_completo": "Rua A, 10"}) == []
