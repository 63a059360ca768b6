"""
cds_extractor/config_base.py

- Carga .env UNA vez
- Define PATHS base (BASE_DIR/PROJECT_DIR/OUTPUT_DIR) temprano
- Helpers defensivos (_get_env_*, _cap_*)
- Flags globales (DEBUG_MODE/SILENT_MODE/LOG_LEVEL/HTTP_DEBUG)
- LOGGER_FILE_* + congelado de LOGGER_FILE_PATH

Este módulo NO debe importar config_*.py para evitar ciclos.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Final

from dotenv import load_dotenv

# No sobre-escribimos env vars ya definidas en el proceso.
load_dotenv(override=False)

from cds_extractor import logger as _logger  # noqa: E402


# ============================================================
# Paths base
# ============================================================

# Directorio del paquete cds_extractor/
BASE_DIR: Final[Path] = Path(__file__).resolve().parent

# Raíz del proyecto (un nivel por encima del paquete)
PROJECT_DIR: Final[Path] = BASE_DIR.parent


# ============================================================
# Helpers: parseo defensivo de env vars
# ============================================================

_TRUE_SET: Final[set[str]] = {"1", "true", "t", "yes", "y", "on"}
_FALSE_SET: Final[set[str]] = {"0", "false", "f", "no", "n", "off"}


def _clean_env_raw(v: object | None) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    if not s:
        return None
    if len(s) >= 2 and (s[0] == s[-1]) and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s or None


def _get_env_str(name: str, default: str | None = None) -> str | None:
    v = _clean_env_raw(os.getenv(name))
    return default if v is None else v


def _get_env_int(name: str, default: int) -> int:
    v = _clean_env_raw(os.getenv(name))
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        _logger.warning(f"Invalid int for {name!r}: {v!r}, using default {default}", always=True)
        return default


def _get_env_float(name: str, default: float) -> float:
    v = _clean_env_raw(os.getenv(name))
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        _logger.warning(f"Invalid float for {name!r}: {v!r}, using default {default}", always=True)
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    v = _clean_env_raw(os.getenv(name))
    if v is None:
        return default
    s = v.lower()
    if s in _TRUE_SET:
        return True
    if s in _FALSE_SET:
        return False
    _logger.warning(f"Invalid bool for {name!r}: {v!r}, using default {default}", always=True)
    return default


def _cap_int(name: str, value: int, *, min_v: int, max_v: int) -> int:
    if value < min_v:
        _logger.warning(f"{name} < {min_v}; forcing to {min_v}", always=True)
        return min_v
    if value > max_v:
        _logger.warning(f"{name} too high; capping to {max_v}", always=True)
        return max_v
    return value


def _cap_float_min(name: str, value: float, *, min_v: float) -> float:
    if value < min_v:
        _logger.warning(f"{name} < {min_v}; forcing to {min_v}", always=True)
        return min_v
    return value


def _resolve_dir(raw: str, *, base: Path) -> Path:
    candidate = Path(raw)
    return candidate if candidate.is_absolute() else (base / candidate)


# ============================================================
# MODO DE EJECUCIÓN
# ============================================================

DEBUG_MODE: bool = _get_env_bool("DEBUG_MODE", False)
SILENT_MODE: bool = _get_env_bool("SILENT_MODE", False)

HTTP_DEBUG: bool = _get_env_bool("HTTP_DEBUG", False)
LOG_LEVEL: str | None = _get_env_str("LOG_LEVEL", None)


# ============================================================
# Salida (zip por servidor) -> relativo al directorio actual
# ============================================================

OUTPUT_DIR: Final[Path] = _resolve_dir(_get_env_str("OUTPUT_DIR", ".") or ".", base=Path.cwd())


# ============================================================
# LOGGER (persistencia opcional a fichero por ejecución)
# ============================================================

LOGGER_FILE_ENABLED: bool = _get_env_bool("LOGGER_FILE_ENABLED", False)
LOGGER_FILE_DIR: Final[Path] = _resolve_dir(_get_env_str("LOGGER_FILE_DIR", "logs") or "logs", base=PROJECT_DIR)
LOGGER_FILE_PREFIX: Final[str] = _get_env_str("LOGGER_FILE_PREFIX", "export") or "export"
LOGGER_FILE_TIMESTAMP_FORMAT: Final[str] = (
    _get_env_str("LOGGER_FILE_TIMESTAMP_FORMAT", "%Y-%m-%d_%H-%M-%S") or "%Y-%m-%d_%H-%M-%S"
)
LOGGER_FILE_INCLUDE_PID: bool = _get_env_bool("LOGGER_FILE_INCLUDE_PID", True)
LOGGER_LOG_LINE_MAX_CHARS: int = _cap_int(
    "LOGGER_LOG_LINE_MAX_CHARS", _get_env_int("LOGGER_LOG_LINE_MAX_CHARS", 500), min_v=40, max_v=100_000
)


def _sanitize_filename_component(s: str) -> str:
    out_chars = [ch if (ch.isalnum() or ch in ("-", "_", ".", "@")) else "_" for ch in (s or "")]
    cleaned = "".join(out_chars).strip("._-")
    return cleaned or "export"


def _build_logger_file_path() -> Path | None:
    """
    Path del log de esta ejecución.

    Se congela en ENV LOGGER_FILE_PATH para que cualquier proceso hijo
    escriba en el mismo fichero.
    """
    if not LOGGER_FILE_ENABLED:
        return None

    explicit = _clean_env_raw(os.getenv("LOGGER_FILE_PATH"))
    if explicit:
        return _resolve_dir(explicit, base=PROJECT_DIR).resolve()

    ts = _sanitize_filename_component(datetime.now().strftime(LOGGER_FILE_TIMESTAMP_FORMAT))
    prefix = _sanitize_filename_component(LOGGER_FILE_PREFIX)
    pid_part = f"_{os.getpid()}" if LOGGER_FILE_INCLUDE_PID else ""

    resolved = (LOGGER_FILE_DIR / f"{prefix}_{ts}{pid_part}.log").resolve()
    os.environ["LOGGER_FILE_PATH"] = str(resolved)
    return resolved


LOGGER_FILE_PATH: Path | None = _build_logger_file_path()
