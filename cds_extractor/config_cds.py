from __future__ import annotations

from cds_extractor.config_base import (
    _cap_float_min,
    _cap_int,
    _get_env_bool,
    _get_env_float,
    _get_env_int,
    _get_env_str,
)

# ============================================================
# ContentDirectory Browse (paginado SOAP)
# ============================================================

# Tamaño de página de cada petición Browse. Muchos servers se atragantan con páginas grandes.
CDS_BROWSE_REQUEST_MAX: int = _cap_int("CDS_BROWSE_REQUEST_MAX", _get_env_int("CDS_BROWSE_REQUEST_MAX", 10), min_v=1, max_v=1000)

CDS_SOAP_TIMEOUT_SECONDS: float = _cap_float_min("CDS_SOAP_TIMEOUT_SECONDS", _get_env_float("CDS_SOAP_TIMEOUT_SECONDS", 10.0), min_v=0.5)
CDS_XML_FETCH_TIMEOUT_SECONDS: float = _cap_float_min("CDS_XML_FETCH_TIMEOUT_SECONDS", _get_env_float("CDS_XML_FETCH_TIMEOUT_SECONDS", 5.0), min_v=0.2)

CDS_HTTP_USER_AGENT: str = _get_env_str("CDS_HTTP_USER_AGENT", "CdsExtractor/1.0 UPnP/1.0") or "CdsExtractor/1.0 UPnP/1.0"

# ============================================================
# Exportación
# ============================================================

# Si True, un contenedor ya encolado no se vuelve a visitar (catálogos con ciclos).
CDS_EXPORT_DEDUPE_CONTAINERS: bool = _get_env_bool("CDS_EXPORT_DEDUPE_CONTAINERS", False)

# ============================================================
# Capítulos (av:chapterInfo)
# ============================================================

CDS_CHAPTER_TIMEOUT_SECONDS: float = _cap_float_min("CDS_CHAPTER_TIMEOUT_SECONDS", _get_env_float("CDS_CHAPTER_TIMEOUT_SECONDS", 5.0), min_v=0.2)
CDS_CHAPTER_HTTP_RETRY_TOTAL: int = _cap_int("CDS_CHAPTER_HTTP_RETRY_TOTAL", _get_env_int("CDS_CHAPTER_HTTP_RETRY_TOTAL", 0), min_v=0, max_v=10)
CDS_CHAPTER_HTTP_RETRY_BACKOFF_FACTOR: float = _cap_float_min(
    "CDS_CHAPTER_HTTP_RETRY_BACKOFF_FACTOR", _get_env_float("CDS_CHAPTER_HTTP_RETRY_BACKOFF_FACTOR", 0.5), min_v=0.0
)
