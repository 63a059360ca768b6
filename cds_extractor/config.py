"""
cds_extractor/config.py

Fachada de configuración: re-exporta config_base + config_cds.

El logger la lee desde sys.modules, así que cualquier entrypoint debe importarla
antes de emitir trazas para que SILENT/DEBUG/LOG_LEVEL tengan efecto.
"""

from __future__ import annotations

from cds_extractor.config_base import (  # noqa: F401
    BASE_DIR,
    DEBUG_MODE,
    HTTP_DEBUG,
    LOG_LEVEL,
    LOGGER_FILE_ENABLED,
    LOGGER_FILE_PATH,
    LOGGER_LOG_LINE_MAX_CHARS,
    OUTPUT_DIR,
    PROJECT_DIR,
    SILENT_MODE,
)
from cds_extractor.config_cds import (  # noqa: F401
    CDS_BROWSE_REQUEST_MAX,
    CDS_CHAPTER_HTTP_RETRY_BACKOFF_FACTOR,
    CDS_CHAPTER_HTTP_RETRY_TOTAL,
    CDS_CHAPTER_TIMEOUT_SECONDS,
    CDS_EXPORT_DEDUPE_CONTAINERS,
    CDS_HTTP_USER_AGENT,
    CDS_SOAP_TIMEOUT_SECONDS,
    CDS_XML_FETCH_TIMEOUT_SECONDS,
)
