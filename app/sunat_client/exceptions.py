"""
Excepciones personalizadas para el cliente SUNAT
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CDR


class SunatException(Exception):
    """Excepción base para errores SUNAT"""
    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class SunatValidationError(SunatException):
    """Error de validación de datos de negocio (antes de cualquier llamada de red)"""
    pass


class SunatSignatureError(SunatException):
    """Error en la firma digital (credencial no disponible o fallo criptográfico)"""
    pass


class SunatSizeLimitError(SunatValidationError):
    """Error cuando el contenido excede el límite de tamaño"""
    def __init__(self, operation: str, size: int, limit: int):
        self.operation = operation
        self.size = size
        self.limit = limit
        message = f"Operación {operation}: tamaño {size} bytes excede límite de {limit} bytes"
        super().__init__(message)


class SunatTransportError(SunatException):
    """Error de transporte: conexión, timeout o HTTP no 2xx"""
    def __init__(self, message: str, http_status: Optional[int] = None, timeout: bool = False):
        self.http_status = http_status
        self.timeout = timeout
        super().__init__(message, str(http_status) if http_status is not None else None)

    @property
    def response_received(self) -> bool:
        """True si el servidor llegó a responder (HTTP no 2xx)."""
        return self.http_status is not None


class SunatSoapFault(SunatException):
    """SOAP Fault devuelto por SUNAT/OSE (faultcode y faultstring preservados)"""
    def __init__(self, fault_code: str, fault_string: str, detail: Optional[str] = None):
        self.fault_code = fault_code
        self.fault_string = fault_string
        self.detail = detail
        super().__init__(f"SOAP fault: {fault_code} - {fault_string}", fault_code)


class SunatResponseError(SunatException):
    """Respuesta SOAP o CDR que no se pudo interpretar"""
    pass


class SunatRejectionError(SunatException):
    """SUNAT rechazó explícitamente el comprobante (CDR con código de rechazo)"""
    def __init__(self, message: str, cdr: Optional["CDR"] = None):
        self.cdr = cdr
        super().__init__(message, cdr.response_code if cdr is not None else None)


class SunatNotImplementedError(SunatException, NotImplementedError):
    """Operación no implementada (comunicación de baja)"""
    pass
