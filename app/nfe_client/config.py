"""
Configuración de endpoints y parámetros de envío (NF-e, NFS-e, Sistema Nacional)
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Union

from dotenv import load_dotenv

from .models import Ambiente

load_dotenv()


# cUF (IBGE) -> sigla
UF_SIGLAS: Dict[str, str] = {
    "35": "SP",
    "33": "RJ",
    "31": "MG",
    "29": "BA",
    "53": "DF",
    "23": "CE",
}

# UF sin webservice propio en la tabla: se usa la autorizadora compartida
FALLBACK_UF = "SP"


class NfeConfig:
    """Configuración por ambiente (homologação / produção)"""

    # NFeAutorizacao4 por UF autorizadora
    NFE_AUTORIZACAO_URLS = {
        Ambiente.HOMOLOGACAO: {
            "SP": os.getenv(
                "NFE_HOMOLOG_URL_SP", "https://homologacao.nfe.fazenda.sp.gov.br/ws/nfeautorizacao4.asmx"
            ),
            "RJ": os.getenv("NFE_HOMOLOG_URL_RJ", "https://nfehomolog.sefaz.rj.gov.br/ws/nfeautorizacao4.asmx"),
            "MG": os.getenv("NFE_HOMOLOG_URL_MG", "https://hnfe.fazenda.mg.gov.br/nfe2/services/NFeAutorizacao4"),
        },
        Ambiente.PRODUCAO: {
            "SP": os.getenv("NFE_PROD_URL_SP", "https://nfe.fazenda.sp.gov.br/ws/nfeautorizacao4.asmx"),
            "RJ": os.getenv(
                "NFE_PROD_URL_RJ", "https://nfe.svrs.rs.gov.br/ws/NfeAutorizacao/NFeAutorizacao4.asmx"
            ),
            "MG": os.getenv("NFE_PROD_URL_MG", "https://nfe.fazenda.mg.gov.br/nfe2/services/NFeAutorizacao4"),
        },
    }

    # NFS-e municipal (SOAP)
    NFSE_MUNICIPAL_URLS = {
        Ambiente.HOMOLOGACAO: os.getenv(
            "NFSE_HOMOLOG_URL", "https://homologacao.nfse.gov.br/ws/nfseautorizacao/nfseautorizacao.asmx"
        ),
        Ambiente.PRODUCAO: os.getenv(
            "NFSE_PROD_URL", "https://nfse.gov.br/ws/nfseautorizacao/nfseautorizacao.asmx"
        ),
    }

    # Sistema Nacional NFS-e (REST)
    NACIONAL_BASE_URLS = {
        Ambiente.HOMOLOGACAO: os.getenv("NFSE_NACIONAL_HOMOLOG_URL", "https://homologacao.nfse.gov.br/api/v1"),
        Ambiente.PRODUCAO: os.getenv("NFSE_NACIONAL_PROD_URL", "https://nfse.gov.br/api/v1"),
    }

    NACIONAL_PATHS = {
        "dps": "/nfse/dps",
        "consulta": "/nfse/{chave}",
        "eventos": "/nfse/eventos",
    }

    USER_AGENT = "nfe-minisender/1.0"

    def __init__(self, env: Union[Ambiente, str, None] = Ambiente.HOMOLOGACAO):
        """
        Args:
            env: Ambiente ('homologacao'/'producao', '2'/'1', 'test'/'prod')

        Raises:
            ValueError: Si el ambiente no es reconocido
        """
        self.ambiente = Ambiente.parse(env)
        self.env = self.ambiente.nome

        # Timeouts (segundos)
        self.request_timeout = int(os.getenv("NFE_REQUEST_TIMEOUT", "300"))
        self.consulta_timeout = int(os.getenv("NFE_CONSULTA_TIMEOUT", "120"))

        self.schemas_dir = Path(os.getenv("NFE_SCHEMAS_DIR", "schemas"))

        # En homologação los servidores usan certificados que no siempre
        # validan contra la cadena local; en produção siempre se verifica
        self.verify_tls = self.ambiente is Ambiente.PRODUCAO or (
            os.getenv("NFE_HOMOLOG_VERIFY_TLS", "false").lower() == "true"
        )
        ca_bundle_path = os.getenv("NFE_CA_BUNDLE_PATH")
        self.ca_bundle_path = Path(ca_bundle_path) if ca_bundle_path else None

    @property
    def is_production(self) -> bool:
        return self.ambiente is Ambiente.PRODUCAO

    def uf_sigla(self, codigo_uf: str) -> Optional[str]:
        return UF_SIGLAS.get(str(codigo_uf).strip())

    def nfe_autorizacao_url(self, codigo_uf: str) -> str:
        """
        URL de NFeAutorizacao4 para el cUF dado.

        Las UF sin entrada en la tabla usan la autorizadora de FALLBACK_UF.
        """
        urls = self.NFE_AUTORIZACAO_URLS[self.ambiente]
        sigla = self.uf_sigla(codigo_uf)
        return urls.get(sigla or "", urls[FALLBACK_UF])

    def nfse_url(self) -> str:
        return self.NFSE_MUNICIPAL_URLS[self.ambiente]

    def nacional_url(self, service_key: str, **params: str) -> str:
        """
        Construye la URL completa de un servicio del Sistema Nacional.

        Args:
            service_key: 'dps', 'consulta' o 'eventos'
            **params: Valores para los placeholders del path (ej. chave)
        """
        if service_key not in self.NACIONAL_PATHS:
            raise ValueError(
                f"Servicio nacional inválido: {service_key}. Válidos: {list(self.NACIONAL_PATHS)}"
            )
        base = self.NACIONAL_BASE_URLS[self.ambiente].rstrip("/")
        return base + self.NACIONAL_PATHS[service_key].format(**params)


def get_nfe_config(env: Union[Ambiente, str, None] = None) -> NfeConfig:
    """
    Factory para obtener configuración

    Args:
        env: Ambiente; si es None se lee NFE_ENV (default homologacao)

    Returns:
        Configuración para el ambiente
    """
    if env is None:
        env = os.getenv("NFE_ENV", "homologacao")
    return NfeConfig(env=env)
