"""
Configuración para cliente SUNAT
"""
import os
from typing import Optional, Tuple

from dotenv import load_dotenv

from .models import Company

load_dotenv()

TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in TRUE_VALUES


def _credential_prefix(ose_enabled: bool) -> str:
    return "SUNAT_OSE" if ose_enabled else "SUNAT"


def _read_credentials(ose_enabled: bool) -> Tuple[Optional[str], Optional[str]]:
    prefix = _credential_prefix(ose_enabled)
    return os.getenv(f"{prefix}_USERNAME") or None, os.getenv(f"{prefix}_PASSWORD") or None


def get_credentials() -> Tuple[str, str]:
    """
    Obtiene usuario y clave SOL (o credenciales OSE si está habilitado).

    Returns:
        Tupla (username, password)

    Raises:
        RuntimeError: Si faltan las variables de entorno
    """
    ose_enabled = _env_bool("SUNAT_OSE_ENABLED")
    username, password = _read_credentials(ose_enabled)
    prefix = _credential_prefix(ose_enabled)
    if not username:
        raise RuntimeError(f"Falta {prefix}_USERNAME en el entorno")
    if not password:
        raise RuntimeError(f"Falta {prefix}_PASSWORD en el entorno")
    return username, password


def get_issuer_from_env() -> Company:
    """
    Construye el emisor desde SUNAT_ISSUER_*.

    Raises:
        RuntimeError: Si falta RUC o razón social
    """
    ruc = os.getenv("SUNAT_ISSUER_RUC", "").strip()
    name = os.getenv("SUNAT_ISSUER_NAME", "").strip()
    if not ruc:
        raise RuntimeError("Falta SUNAT_ISSUER_RUC en el entorno")
    if not name:
        raise RuntimeError("Falta SUNAT_ISSUER_NAME en el entorno")
    return Company(
        document_type=os.getenv("SUNAT_ISSUER_DOCUMENT_TYPE", "6"),
        document_number=ruc,
        name=name,
        trade_name=os.getenv("SUNAT_ISSUER_TRADE_NAME", name),
        address=os.getenv("SUNAT_ISSUER_ADDRESS", ""),
        district=os.getenv("SUNAT_ISSUER_DISTRICT", ""),
        province=os.getenv("SUNAT_ISSUER_PROVINCE", ""),
        department=os.getenv("SUNAT_ISSUER_DEPARTMENT", ""),
        country=os.getenv("SUNAT_ISSUER_COUNTRY", "PE"),
        email=os.getenv("SUNAT_ISSUER_EMAIL", ""),
        phone=os.getenv("SUNAT_ISSUER_PHONE", ""),
    )


class SunatConfig:
    """Configuración del cliente SUNAT por ambiente"""

    ENV_BETA = "beta"
    ENV_PROD = "prod"

    # Servicio billService (SOAP 1.1)
    BILL_SERVICE_URLS = {
        "beta": "https://e-beta.sunat.gob.pe/ol-ti-itcpfegem-beta/billService",
        "prod": "https://e-factura.sunat.gob.pe/ol-ti-itcpfegem/billService",
    }

    # Límite del contenido base64 (contentFile)
    DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024

    def __init__(self, env: str = ENV_BETA):
        """
        Inicializa la configuración SUNAT

        Args:
            env: Ambiente ('beta' o 'prod')
        """
        if env not in [self.ENV_BETA, self.ENV_PROD]:
            raise ValueError(f"Ambiente inválido: {env}. Debe ser 'beta' o 'prod'")

        self.env = env

        # OSE (Operador de Servicios Electrónicos) reemplaza el endpoint SUNAT
        self.ose_enabled = _env_bool("SUNAT_OSE_ENABLED")
        self.ose_provider = os.getenv("SUNAT_OSE_PROVIDER", "")
        ose_url = os.getenv("SUNAT_OSE_URL", "")
        if self.ose_enabled and not ose_url:
            raise ValueError("SUNAT_OSE_ENABLED=true requiere SUNAT_OSE_URL")

        self.bill_service_url = (
            os.getenv("SUNAT_BILL_SERVICE_URL")
            or (ose_url if self.ose_enabled else "")
            or self.BILL_SERVICE_URLS[env]
        )

        # Credenciales SOL (WS-Security UsernameToken)
        self.username, self.password = _read_credentials(self.ose_enabled)

        # Certificado de firma (PFX/P12 o PEM + key)
        self.cert_path: Optional[str] = os.getenv("SUNAT_CERT_PATH") or None
        self.cert_password: Optional[str] = os.getenv("SUNAT_CERT_PASSWORD") or None
        self.key_path: Optional[str] = os.getenv("SUNAT_KEY_PATH") or None
        self.key_password: Optional[str] = os.getenv("SUNAT_KEY_PASSWORD") or None

        # Timeouts (connect, read)
        self.connect_timeout = float(os.getenv("SUNAT_SOAP_TIMEOUT_CONNECT", "10"))
        self.read_timeout = float(os.getenv("SUNAT_SOAP_TIMEOUT_READ", "30"))

        self.max_content_bytes = int(
            os.getenv("SUNAT_MAX_CONTENT_BYTES", str(self.DEFAULT_MAX_CONTENT_BYTES))
        )

        # Firmador NO productivo (solo pruebas locales / beta)
        self.allow_unsigned = _env_bool("SUNAT_ALLOW_UNSIGNED")

        self.artifacts_dir = os.getenv("SUNAT_ARTIFACTS_DIR") or None

    @property
    def is_production(self) -> bool:
        return self.env == self.ENV_PROD

    @property
    def timeout(self) -> Tuple[float, float]:
        return (self.connect_timeout, self.read_timeout)


def get_sunat_config(env: Optional[str] = None) -> SunatConfig:
    """
    Obtiene la configuración SUNAT desde variables de entorno

    Args:
        env: Ambiente ('beta' o 'prod'). Si None, usa SUNAT_ENV

    Returns:
        Configuración SUNAT
    """
    if env is None:
        env = os.getenv("SUNAT_ENV", SunatConfig.ENV_BETA).strip().lower()
    return SunatConfig(env)
