"""
cds_extractor/chapter_info.py

Capítulos de un item vía la extensión Sony `av:chapterInfo`.

El campo contiene una URL a un XML de la forma:

    <contentInfo>
      <content_chapter_info>
        <chapter><chapter_point>12.5</chapter_point></chapter>
        ...
      </content_chapter_info>
    </contentInfo>

`chapter_point` va en segundos (float); se devuelve en milisegundos enteros.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Final

import requests
from lxml import etree
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from cds_extractor import logger as _logger
from cds_extractor.cds_object import CatalogEntry
from cds_extractor.config_cds import (
    CDS_CHAPTER_HTTP_RETRY_BACKOFF_FACTOR,
    CDS_CHAPTER_HTTP_RETRY_TOTAL,
    CDS_CHAPTER_TIMEOUT_SECONDS,
    CDS_HTTP_USER_AGENT,
)
from cds_extractor.run_metrics import METRICS

SONY_CHAPTER_INFO: Final[str] = "av:chapterInfo"
_ROOT_NODE: Final[str] = "contentInfo"
_LIST_NODE: Final[str] = "content_chapter_info"
_CHAPTER_NODE: Final[str] = "chapter"
_POINT_NODE: Final[str] = "chapter_point"

ChapterCallback = Callable[[list[int] | None], None]

_SESSION: requests.Session | None = None
_SESSION_LOCK = threading.Lock()


def _get_session() -> requests.Session:
    """requests.Session singleton con Retry (solo GET) y pooling."""
    global _SESSION
    if _SESSION is not None:
        return _SESSION

    with _SESSION_LOCK:
        if _SESSION is not None:
            return _SESSION

        session = requests.Session()
        session.headers.update({"User-Agent": CDS_HTTP_USER_AGENT, "Accept": "text/xml,application/xml,*/*"})

        retries = Retry(
            total=CDS_CHAPTER_HTTP_RETRY_TOTAL,
            backoff_factor=CDS_CHAPTER_HTTP_RETRY_BACKOFF_FACTOR,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries, pool_connections=2, pool_maxsize=2)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        _SESSION = session
        return _SESSION


def _find_child(parent: etree._Element, name: str) -> etree._Element | None:
    for child in parent:
        if isinstance(child.tag, str) and child.tag == name:
            return child
    return None


def parse_chapter_info(xml: str | bytes | None) -> list[int] | None:
    """XML contentInfo -> lista de puntos de capítulo en ms, o None si no encaja."""
    if not xml:
        return None
    data = xml.encode("utf-8") if isinstance(xml, str) else xml
    try:
        root = etree.fromstring(data, parser=etree.XMLParser(resolve_entities=False, no_network=True))
    except (etree.XMLSyntaxError, ValueError) as exc:
        _logger.debug_ctx("CHAPTER", f"XML no parseable: {exc!r}")
        return None

    if root.tag != _ROOT_NODE:
        return None
    content = _find_child(root, _LIST_NODE)
    if content is None:
        return None

    out: list[int] = []
    for chapter in content:
        if chapter.tag != _CHAPTER_NODE:
            continue
        point = _find_child(chapter, _POINT_NODE)
        if point is None or not point.text:
            continue
        try:
            out.append(int(float(point.text) * 1000))
        except (ValueError, OverflowError):
            continue
    return out


def fetch_chapter_info(entry: CatalogEntry) -> list[int] | None:
    """
    Descarga y parsea los capítulos de `entry`.

    None si el item no trae `av:chapterInfo` o si falla la descarga/parseo.
    """
    url = entry.get_value(SONY_CHAPTER_INFO)
    if not url:
        return None
    try:
        resp = _get_session().get(url, timeout=CDS_CHAPTER_TIMEOUT_SECONDS)
        resp.raise_for_status()
    except RequestException as exc:
        METRICS.incr("chapter.fetch.errors")
        METRICS.add_error("chapter", "fetch", endpoint=url, detail=repr(exc))
        _logger.warning(f"[CHAPTER] No se pudo descargar {url}: {exc!r}")
        return None
    return parse_chapter_info(resp.content)


def request_chapter_info(entry: CatalogEntry, callback: ChapterCallback) -> bool:
    """
    Variante asíncrona: lanza la descarga en un hilo daemon y llama a
    `callback(resultado | None)` al terminar.

    Devuelve False (sin lanzar nada) si el item no tiene `av:chapterInfo`.
    """
    if not entry.get_value(SONY_CHAPTER_INFO):
        return False

    def _run() -> None:
        callback(fetch_chapter_info(entry))

    threading.Thread(target=_run, name=f"chapter-{entry.object_id}", daemon=True).start()
    return True
