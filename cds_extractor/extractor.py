from __future__ import annotations

"""
cds_extractor/extractor.py

Orquestador de la exportación: recorre el ContentDirectory en anchura y vuelca
el XML crudo de cada Browse a un zip.

Layout del zip (<name> = friendlyName saneado):

    <name>/description/<friendlyName>.xml
    <name>/description/<serviceId>.xml
    <name>/cds/<objectId>.xml                  (una sola página)
    <name>/cds/<objectId>(<start>-<end>).xml   (varias páginas)

Concurrencia
------------
- Un único worker por exportación (Exporter usa ThreadPoolExecutor(max_workers=1)).
- La cola de ids, el allocator de paths y el zip solo los toca ese worker.
- El hilo interactivo solo activa `cancel_event` y consume la cola de progreso.
- La cancelación se comprueba entre pasos; un Browse en curso no se interrumpe.
"""

import queue
import threading
import time
import zipfile
from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Literal, Protocol

from cds_extractor import logger as _logger
from cds_extractor.archive_paths import ArchivePathAllocator, to_file_name_string
from cds_extractor.cds_object import BrowseResult, Description
from cds_extractor.config_base import OUTPUT_DIR
from cds_extractor.config_cds import CDS_EXPORT_DEDUPE_CONTAINERS
from cds_extractor.media_server import UpnpService
from cds_extractor.run_metrics import METRICS

ExportStatus = Literal["running", "completed", "cancelled", "failed"]

ROOT_OBJECT_ID = "0"


# ============================================================================
# Tipos
# ============================================================================


@dataclass(frozen=True, slots=True)
class ExportProgress:
    """Estimación visited/total; total crece según se descubren contenedores."""

    visited: int
    total: int
    status: ExportStatus = "running"

    @property
    def terminal(self) -> bool:
        return self.status != "running"

    def __str__(self) -> str:
        text = f"{self.visited}/{self.total}"
        return text if self.status == "running" else f"{text} {self.status}"


@dataclass(frozen=True, slots=True)
class ExportOutcome:
    status: ExportStatus
    visited: int
    total: int
    archive_path: Path | None = None
    error: BaseException | None = None


ProgressCallback = Callable[[ExportProgress], None]


class CatalogTransport(Protocol):
    def browse(self, object_id: str) -> BrowseResult: ...


class DescribedServer(Protocol):
    friendly_name: str
    description: str
    services: list[UpnpService]

    def get_service_description(self, service: UpnpService) -> str: ...


class ExportServer(CatalogTransport, DescribedServer, Protocol):
    pass


class ArchiveWriter(Protocol):
    def write(self, path: str, data: str) -> None: ...


class ExportBusyError(RuntimeError):
    """Ya hay una exportación en curso."""


# ============================================================================
# Zip
# ============================================================================


class ZipArchiveWriter:
    """Zip de salida: una entrada UTF-8 por `write()`."""

    def __init__(self, target: str | Path | IO[bytes]) -> None:
        self._zip = zipfile.ZipFile(target, mode="w", compression=zipfile.ZIP_DEFLATED)

    def write(self, path: str, data: str) -> None:
        self._zip.writestr(path, data.encode("utf-8"))
        METRICS.incr("export.entries_written")

    def close(self) -> None:
        self._zip.close()

    def __enter__(self) -> ZipArchiveWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.close()


# ============================================================================
# Volcado
# ============================================================================


def chunk_path(allocator: ArchivePathAllocator, base: str, object_id: str, chunk: Description, *, single: bool) -> str:
    if single:
        return allocator.make_path(base, object_id)
    return allocator.make_path(base, object_id, f"({chunk.start}-{chunk.end}).xml")


def save_descriptions(server: DescribedServer, writer: ArchiveWriter, allocator: ArchivePathAllocator, base: str) -> int:
    """Device description + SCPD de cada servicio. Devuelve nº de entradas escritas."""
    writer.write(allocator.make_path(base, server.friendly_name), server.description)
    written = 1
    for service in server.services:
        writer.write(allocator.make_path(base, service.service_id), server.get_service_description(service))
        written += 1
    return written


def dump_all_containers(
    transport: CatalogTransport,
    writer: ArchiveWriter,
    allocator: ArchivePathAllocator,
    base: str,
    *,
    root_id: str = ROOT_OBJECT_ID,
    cancel_event: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
    dedupe: bool = CDS_EXPORT_DEDUPE_CONTAINERS,
) -> ExportProgress:
    """
    Recorrido FIFO (anchura) desde `root_id`.

    Por cada id: Browse, encola sus contenedores, reporta progreso y escribe
    sus páginas crudas. Cualquier excepción del transporte o del writer se propaga.
    Devuelve el progreso final con estado "completed" o "cancelled".
    """
    pending: deque[str] = deque([root_id])
    seen: set[str] = {root_id}
    total = len(pending)

    while pending:
        if cancel_event is not None and cancel_event.is_set():
            _logger.info(f"[EXPORT] Cancelado con {len(pending)} contenedores pendientes")
            return ExportProgress(total - len(pending), total, "cancelled")

        object_id = pending.popleft()
        t0 = time.monotonic()
        result = transport.browse(object_id)
        METRICS.observe_ms("export.browse_ms", (time.monotonic() - t0) * 1000.0)
        METRICS.incr("export.containers")

        for entry in result.entries:
            if not entry.is_container:
                continue
            if dedupe:
                if entry.object_id in seen:
                    METRICS.incr("export.cycle_skips")
                    _logger.debug_ctx("EXPORT", f"contenedor repetido omitido: {entry.object_id}")
                    continue
                seen.add(entry.object_id)
            pending.append(entry.object_id)
            total += 1

        if on_progress is not None:
            on_progress(ExportProgress(total - len(pending), total))

        single = len(result.descriptions) == 1
        for chunk in result.descriptions:
            writer.write(chunk_path(allocator, base, object_id, chunk, single=single), chunk.xml)

    return ExportProgress(total, total, "completed")


def export_to_zip(
    server: ExportServer,
    output: str | Path | IO[bytes],
    *,
    target_name: str | None = None,
    root_id: str = ROOT_OBJECT_ID,
    cancel_event: threading.Event | None = None,
    on_progress: ProgressCallback | None = None,
    allocator: ArchivePathAllocator | None = None,
) -> ExportOutcome:
    """
    Exportación completa a `output` (path o fichero binario).

    Nunca lanza: los fallos de transporte/IO se devuelven como status="failed"
    y siempre se emite un último progreso terminal.
    """
    name = to_file_name_string(target_name or server.friendly_name)
    paths = allocator if allocator is not None else ArchivePathAllocator()
    archive_path = Path(output) if isinstance(output, (str, Path)) else None

    last = ExportProgress(0, 1)

    def _report(p: ExportProgress) -> None:
        nonlocal last
        last = p
        if on_progress is not None:
            on_progress(p)

    paths.clear()
    METRICS.reset()
    _logger.info(f"[EXPORT] Inicio: {server.friendly_name!r} -> {archive_path or '<stream>'}")
    try:
        with ZipArchiveWriter(output) as writer:
            save_descriptions(server, writer, paths, f"{name}/description")
            last = dump_all_containers(
                server,
                writer,
                paths,
                f"{name}/cds",
                root_id=root_id,
                cancel_event=cancel_event,
                on_progress=_report,
            )
    except Exception as exc:
        METRICS.add_error("export", "run", endpoint=None, detail=repr(exc))
        _logger.error(f"[EXPORT] Fallo exportando {server.friendly_name!r}: {exc!r}", always=True)
        last = ExportProgress(last.visited, last.total, "failed")
        if on_progress is not None:
            on_progress(last)
        return ExportOutcome("failed", last.visited, last.total, archive_path, exc)
    finally:
        paths.clear()

    if on_progress is not None:
        on_progress(last)
    _logger.info(f"[EXPORT] Fin ({last.status}): {last.visited}/{last.total}")
    return ExportOutcome(last.status, last.visited, last.total, archive_path)


# ============================================================================
# Job runner (un worker dedicado)
# ============================================================================


@dataclass(slots=True)
class ExportHandle:
    """Canal entre el hilo interactivo y el worker de una exportación."""

    progress: queue.Queue[ExportProgress]
    future: Future[ExportOutcome]
    cancel_event: threading.Event

    def cancel(self) -> None:
        self.cancel_event.set()

    def iter_progress(self) -> Iterator[ExportProgress]:
        """
        Eventos de progreso hasta (e incluyendo) el terminal.

        El terminal solo se entrega con el Future ya resuelto: tras consumirlo,
        `Exporter.busy` es False y se puede lanzar la siguiente exportación.
        """
        while True:
            event = self.progress.get()
            if event.terminal:
                wait([self.future])
                yield event
                return
            yield event

    def result(self, timeout: float | None = None) -> ExportOutcome:
        return self.future.result(timeout=timeout)


class Exporter:
    """Lanza exportaciones de una en una sobre un único hilo worker."""

    def __init__(self, output_dir: str | Path | None = None) -> None:
        self.output_dir = Path(output_dir) if output_dir is not None else OUTPUT_DIR
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cds-export")
        self._lock = threading.Lock()
        self._current: Future[ExportOutcome] | None = None
        self._allocator = ArchivePathAllocator()

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._current is not None and not self._current.done()

    def archive_path_for(self, target_name: str) -> Path:
        return self.output_dir / f"{to_file_name_string(target_name)}.zip"

    def start_export(
        self,
        server: ExportServer,
        root_id: str = ROOT_OBJECT_ID,
        target_name: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExportHandle:
        name = target_name or server.friendly_name
        cancel = cancel_event if cancel_event is not None else threading.Event()
        progress: queue.Queue[ExportProgress] = queue.Queue()
        output = self.archive_path_for(name)

        with self._lock:
            if self._current is not None and not self._current.done():
                raise ExportBusyError("ya hay una exportación en curso")
            self.output_dir.mkdir(parents=True, exist_ok=True)
            future = self._executor.submit(
                export_to_zip,
                server,
                output,
                target_name=name,
                root_id=root_id,
                cancel_event=cancel,
                on_progress=progress.put,
                allocator=self._allocator,
            )
            self._current = future

        return ExportHandle(progress=progress, future=future, cancel_event=cancel)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> Exporter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[no-untyped-def]
        self.shutdown()
