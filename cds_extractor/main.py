from __future__ import annotations

"""
cds_extractor/main.py

Punto de entrada CLI (console_scripts: cds-extractor).

Reglas de consola (alineado con cds_extractor/logger.py)
-------------------------------------------------------
- Información para el usuario: logger.info(..., always=True)
- Estado global (inicio / progreso / fin): logger.progress(...)
- Ctrl+C activa la cancelación cooperativa; la exportación termina en el
  siguiente paso y el zip parcial queda cerrado.
"""

import argparse
import sys
from pathlib import Path

from cds_extractor import config  # noqa: F401  (activa SILENT/DEBUG/LOG_LEVEL en el logger)
from cds_extractor import logger
from cds_extractor.config_base import DEBUG_MODE, OUTPUT_DIR, SILENT_MODE
from cds_extractor.extractor import ROOT_OBJECT_ID, ExportHandle, ExportOutcome, Exporter
from cds_extractor.media_server import CdsTransportError, MediaServer
from cds_extractor.run_metrics import METRICS

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cds-extractor",
        description="Vuelca el ContentDirectory de un MediaServer UPnP/DLNA a un zip.",
    )
    parser.add_argument(
        "--location",
        required=True,
        help="URL de la device description (LOCATION del anuncio SSDP)",
    )
    parser.add_argument("--root-id", default=ROOT_OBJECT_ID, help="ObjectID desde el que empezar (por defecto 0)")
    parser.add_argument("--output-dir", type=Path, default=None, help=f"Directorio del zip (por defecto {OUTPUT_DIR})")
    parser.add_argument("--name", default=None, help="Nombre del zip y carpeta raíz (por defecto friendlyName)")
    parser.add_argument("--list", action="store_true", help="Solo muestra el dispositivo y sus servicios")
    return parser


def _print_server(server: MediaServer) -> None:
    logger.info(f"{server.friendly_name}  ({server.udn})", always=True)
    for service in server.services:
        logger.info(f"  - {service.service_id}  {service.service_type}", always=True)


def _print_summary() -> None:
    snap = METRICS.snapshot()
    counters = snap["counters"]
    logger.progress(
        "[CDS] Resumen: "
        f"browse={counters.get('cds.browse.calls', 0)} "
        f"páginas={counters.get('cds.browse.pages', 0)} "
        f"entradas_zip={counters.get('export.entries_written', 0)} "
        f"omitidas={counters.get('cds.parse.skipped_entries', 0)} "
        f"errores={snap['derived']['errors.total']}"
    )


def _follow(handle: ExportHandle) -> ExportOutcome:
    """Muestra el progreso en el hilo principal; Ctrl+C -> cancelación."""
    events = handle.iter_progress()
    while True:
        try:
            event = next(events)
        except StopIteration:
            break
        except KeyboardInterrupt:
            logger.info("\n[CDS] Cancelando (Ctrl+C)...", always=True)
            handle.cancel()
            continue
        if event.terminal:
            break
        logger.progress(f"[CDS] {event}")
    return handle.result()


def _exit_code(outcome: ExportOutcome) -> int:
    if outcome.status == "completed":
        return EXIT_OK
    if outcome.status == "cancelled":
        return EXIT_CANCELLED
    return EXIT_FAILED


def run(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    if SILENT_MODE:
        logger.progress("[CDS] SILENT_MODE=True" + (" DEBUG_MODE=True" if DEBUG_MODE else ""))
    elif DEBUG_MODE:
        logger.debug_ctx("CDS", "SILENT_MODE=False DEBUG_MODE=True")

    try:
        server = MediaServer.from_location(args.location)
    except CdsTransportError as exc:
        logger.error(f"[CDS] {exc}", always=True)
        return EXIT_FAILED

    if args.list:
        _print_server(server)
        return EXIT_OK

    with Exporter(args.output_dir) as exporter:
        name = args.name or server.friendly_name
        logger.progress(f"[CDS] Exportando {server.friendly_name!r} -> {exporter.archive_path_for(name)}")
        handle = exporter.start_export(server, root_id=args.root_id, target_name=name)
        outcome = _follow(handle)

    _print_summary()
    if outcome.status == "failed":
        logger.error(f"[CDS] Exportación fallida: {outcome.error!r}", always=True)
    logger.progressf("[CDS] Fin (%s) %d/%d", outcome.status, outcome.visited, outcome.total)
    return _exit_code(outcome)


def main() -> None:
    logger.progress("[CDS] Inicio")
    try:
        code = run()
    except KeyboardInterrupt:
        logger.info("\n[CDS] Interrumpido por el usuario (Ctrl+C).", always=True)
        code = EXIT_CANCELLED
    sys.exit(code)


if __name__ == "__main__":
    main()
