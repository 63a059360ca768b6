from __future__ import annotations

"""
cds_extractor/logger.py

Fachada de logging del extractor.

Dos canales:
- progress(...) / progressf(...): líneas de estado para la consola (visited/total,
  inicio, fin). Siempre visibles, sin timestamp.
- debug / info / warning / error: logging estándar bajo el logger "cds_extractor".

Política
--------
- SILENT_MODE=True: solo pasan `error()` y las llamadas con always=True.
- DEBUG_MODE=True: `debug_ctx` emite trazas (por progress si además SILENT_MODE).
- Un fallo del propio logging nunca interrumpe una exportación.

La configuración se lee de `cds_extractor.config` solo si ya está en sys.modules;
este módulo no la importa (config_base usa el logger al parsear el entorno).

Fichero opcional: LOGGER_FILE_ENABLED + LOGGER_FILE_PATH (el ENV tiene prioridad).
"""

import logging
import os
import sys
import threading
from types import ModuleType, TracebackType
from typing import Final, Mapping, TypedDict

from typing_extensions import TypeAlias, Unpack

LOGGER_NAME: Final[str] = "cds_extractor"
_CONFIG_MODULE: Final[str] = "cds_extractor.config"
_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_HANDLER_MARK: Final[str] = "_cds_extractor_file_handler"
_DEFAULT_LINE_MAX_CHARS: Final[int] = 500
_TRUNCATED_SUFFIX: Final[str] = " …(truncated)"

_ExcInfoTuple: TypeAlias = tuple[type[BaseException], BaseException, TracebackType | None]
ExcInfo: TypeAlias = bool | _ExcInfoTuple | BaseException | None


class LogKwargs(TypedDict, total=False):
    """kwargs de logging.Logger.* que se reenvían sin tocar."""

    exc_info: ExcInfo
    stack_info: bool
    stacklevel: int
    extra: Mapping[str, object] | None


_LOGGER: logging.Logger | None = None
_INIT_LOCK = threading.Lock()
_PROGRESS_FILE_LOCK = threading.Lock()

_LEVELS: Final[dict[str, int]] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


# ============================================================================
# Lectura de config (sin importarla)
# ============================================================================


def _config() -> ModuleType | None:
    mod = sys.modules.get(_CONFIG_MODULE)
    return mod if isinstance(mod, ModuleType) else None


def _setting(name: str, default: object = None) -> object:
    cfg = _config()
    return default if cfg is None else getattr(cfg, name, default)


def is_silent_mode() -> bool:
    return bool(_setting("SILENT_MODE", False))


def is_debug_mode() -> bool:
    return bool(_setting("DEBUG_MODE", False))


def _level() -> int:
    """LOG_LEVEL explícito > DEBUG_MODE > INFO."""
    raw = _setting("LOG_LEVEL")
    if isinstance(raw, str) and raw.strip().upper() in _LEVELS:
        return _LEVELS[raw.strip().upper()]
    return logging.DEBUG if is_debug_mode() else logging.INFO


def _log_file_path() -> str | None:
    """Path del fichero de log, o None si está desactivado."""
    if not _setting("LOGGER_FILE_ENABLED", False):
        return None
    raw = (os.getenv("LOGGER_FILE_PATH") or "").strip() or _setting("LOGGER_FILE_PATH")
    path = str(raw).strip() if raw else ""
    return path or None


# ============================================================================
# Inicialización
# ============================================================================


def _attach_file_handler(root: logging.Logger, level: int) -> None:
    path = _log_file_path()
    if path is None:
        return
    for handler in root.handlers:
        if getattr(handler, _FILE_HANDLER_MARK, False):
            handler.setLevel(level)
            return
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError:
        return
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))
    setattr(handler, _FILE_HANDLER_MARK, True)
    root.addHandler(handler)


def _configure(level: int) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_FORMAT)
    root.setLevel(level)
    for handler in root.handlers:
        handler.setLevel(level)

    # El transporte de capítulos usa requests/urllib3.
    if not _setting("HTTP_DEBUG", False):
        for name in ("urllib3", "urllib3.connectionpool", "requests"):
            logging.getLogger(name).setLevel(logging.WARNING)

    _attach_file_handler(root, level)


def _ensure_configured() -> logging.Logger:
    """Idempotente; reaplica nivel y handlers si la config cambió."""
    global _LOGGER
    with _INIT_LOCK:
        try:
            _configure(_level())
        except Exception:
            pass
        if _LOGGER is None:
            _LOGGER = logging.getLogger(LOGGER_NAME)
        return _LOGGER


# ============================================================================
# Progreso
# ============================================================================


def progress(message: str) -> None:
    """Línea siempre visible; también va al fichero de log si está activo."""
    try:
        sys.stdout.write(f"{message}\n")
        sys.stdout.flush()
    except Exception:
        pass

    path = _log_file_path()
    if path is None:
        return
    try:
        with _PROGRESS_FILE_LOCK, open(path, "a", encoding="utf-8") as fh:
            fh.write(f"{message}\n")
    except OSError:
        return


def progressf(fmt: str, *args: object) -> None:
    try:
        msg = fmt % args if args else fmt
    except (TypeError, ValueError):
        msg = fmt
    progress(msg)


# ============================================================================
# Logging
# ============================================================================


def _emit(level: int, msg: str, args: tuple[object, ...], always: bool, kwargs: LogKwargs) -> None:
    if level < logging.ERROR and not always and is_silent_mode():
        return
    try:
        _ensure_configured().log(level, msg, *args, **kwargs)
    except Exception:
        if level >= logging.ERROR:
            print(msg, file=sys.stderr)


def debug(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.DEBUG, msg, args, always, kwargs)


def info(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.INFO, msg, args, always, kwargs)


def warning(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.WARNING, msg, args, always, kwargs)


def error(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    """Ignora SILENT_MODE."""
    _emit(logging.ERROR, msg, args, True, kwargs)


def truncate_line(text: str, max_chars: int | None = None) -> str:
    """Recorta fragmentos DIDL-Lite largos antes de loguearlos."""
    if isinstance(max_chars, int) and max_chars > 0:
        limit = max_chars
    else:
        try:
            limit = int(_setting("LOGGER_LOG_LINE_MAX_CHARS", _DEFAULT_LINE_MAX_CHARS))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            limit = _DEFAULT_LINE_MAX_CHARS
    if len(text) <= limit:
        return text
    return text[: max(0, limit - len(_TRUNCATED_SUFFIX))] + _TRUNCATED_SUFFIX


def debug_ctx(tag: str, msg: object) -> None:
    """
    Traza con tag, solo con DEBUG_MODE.

    SILENT_MODE=True  -> progress("[TAG][DEBUG] ...")
    SILENT_MODE=False -> info("[TAG][DEBUG] ...")
    """
    if not is_debug_mode():
        return
    line = f"[{(tag or 'DEBUG').strip().upper()}][DEBUG] {msg}"
    if is_silent_mode():
        progress(line)
    else:
        info(line)
