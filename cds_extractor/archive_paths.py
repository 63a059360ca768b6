"""
cds_extractor/archive_paths.py

Nombres de entrada dentro del zip.

- to_file_name_string(): sustituye \\ / : * ? " < > | por "_".
- ArchivePathAllocator: reserva paths únicos por exportación; en colisión prueba
  "<base>$$0<suffix>", "<base>$$1<suffix>", ... (el sufijo, p.ej. ".xml", va al final).
"""

from __future__ import annotations

import re
from typing import Final

_UNSAFE_CHARS_RE: Final[re.Pattern[str]] = re.compile(r'[\\/:*?"<>|]')

# Límite práctico del sondeo "$$n" (equivalente a un int de 32 bits).
_MAX_PROBE: Final[int] = 2**31 - 1


class PathAllocationError(OSError):
    """No quedan nombres libres para un path (en la práctica no ocurre)."""


def to_file_name_string(name: str) -> str:
    return _UNSAFE_CHARS_RE.sub("_", name)


class ArchivePathAllocator:
    """
    Reserva de paths de una única exportación.

    Solo la usa el worker de la exportación; no necesita lock.
    """

    def __init__(self) -> None:
        self._used: set[str] = set()

    def __len__(self) -> int:
        return len(self._used)

    def __contains__(self, path: object) -> bool:
        return path in self._used

    def clear(self) -> None:
        self._used.clear()

    def allocate(self, base_path: str, suffix: str = "") -> str:
        candidate = base_path + suffix
        if candidate not in self._used:
            self._used.add(candidate)
            return candidate
        for i in range(_MAX_PROBE):
            candidate = f"{base_path}$${i}{suffix}"
            if candidate not in self._used:
                self._used.add(candidate)
                return candidate
        raise PathAllocationError(f"no free archive path for {base_path + suffix!r}")

    def make_path(self, base: str, name: str, suffix: str = ".xml") -> str:
        """Path "<base>/<name saneado><suffix>" reservado."""
        return self.allocate(f"{base}/{to_file_name_string(name)}", suffix)
