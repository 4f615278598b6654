import json

import pytest

from nfe_minisender.api import main


@pytest.fixture
def dps_json(tmp_path):
    path = tmp_path / "dps.json"
    path.write_text(json.dumps({
        "tipo": "dps",
        "identificacao": {
            "codigo_municipio": "3550308",
            "numero": 9,
            "data_emissao": "2026-01-15T10:00:00-03:00",
        },
        "prestador": {"razao_social": "EMPRESA TESTE LTDA", "cnpj": "12345678000195", "inscricao_municipal": "1"},
        "servicos": [{"codigo": "0107", "discriminacao": "Serviço", "valor_unitario": "100.00"}],
    }), encoding="utf-8")
    return path


def test_build_escribe_xml(dps_json, tmp_path, capsys):
    out = tmp_path / "out" / "dps.xml"
    assert main(["build", str(dps_json), "--out", str(out)]) == 0
    assert out.read_bytes().startswith(b"<?xml")
    assert "DPS000000000000009" in capsys.readouterr().err


def test_sign_con_certificado(dps_json, tmp_path, cert_b64, monkeypatch, capsys):
    import base64

    from conftest import CERT_PASSWORD

    p12 = tmp_path / "cert.p12"
    p12.write_bytes(base64.b64decode(cert_b64))
    monkeypatch.setenv("NFE_CERT_PATH", str(p12))
    monkeypatch.setenv("NFE_CERT_PASSWORD", CERT_PASSWORD)

    assert main(["sign", str(dps_json)]) == 0
    captured = capsys.readouterr()
    assert "<Signature" in captured.out
    assert "rsa-sha256" in captured.err


def test_validate_sin_esquemas_es_degradado(dps_json, tmp_path, capsys):
    xml = tmp_path / "dps.xml"
    main(["build", str(dps_json), "--out", str(xml)])
    capsys.readouterr()
    assert main(["validate", str(xml), "--kind", "dps", "--schemas-dir", str(tmp_path)]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["degraded"] is True


def test_send_en_producao_requiere_confirmacion(dps_json, monkeypatch):
    monkeypatch.delenv("NFE_CONFIRM_PROD", raising=False)
    with pytest.raises(SystemExit, match="NFE_CONFIRM_PROD"):
        main(["send", str(dps_json), "--env", "producao"])


def test_documento_inexistente(tmp_path):
    with pytest.raises(SystemExit, match="no existe"):
        main(["build", str(tmp_path / "nada.json")])
