"""Record-level helpers: raw search and service-family grouping."""

from __future__ import annotations

from typing import Iterable

from ripsfold.models import ServiceRecord

DEFAULT_SERVICE_TYPES = [
    "CONSULTA EXTERNA Y/O SERVICIO DE MEDICINA GENERAL",
    "ODONTOLOGIA GENERAL",
    "LABORATORIO CLINICO, BAJA COMPLEJIDAD",
    "IMAGENES DIAGNOSTICAS BAJA COMPLEJIDAD",
    "TRANSPORTE ASISTENCIAL",
    "URGENCIAS BC",
    "HOSPITALIZACIÓN BAJA COMPLEJIDAD; GENERAL ADULTOS; PEDIATRICA Y OBSTETRICA",
    "PEDIATRIA",
    "GINECOLOGIA",
    "MEDICINA INTERNA",
    "PSICOLOGIA",
    "NUTRICION",
]

FAMILY_CONSULTATIONS = "CONSULTAS"
FAMILY_PROCEDURES = "PROCEDIMIENTOS"
FAMILY_OTHER = "OTROS_SERVICIOS"

# Checked in order; the first family with a matching keyword wins
_FAMILY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    (FAMILY_CONSULTATIONS, ("CONSULTA", "MEDICINA GENERAL", "ESPECIALIZADA", "URGENCIA")),
    (
        FAMILY_PROCEDURES,
        ("LABORATORIO", "IMAGEN", "ODONTOLOGIA", "PROCEDIMIENTO", "QUIRURGICO", "APOYO"),
    ),
]


def search_records(records: Iterable[ServiceRecord], term: str) -> list[ServiceRecord]:
    """Case-insensitive substring search over code, name, type and patient ID."""
    records = list(records)
    if not term:
        return records
    needle = term.lower()
    return [
        r
        for r in records
        if needle in r.service_code.lower()
        or needle in r.service_name.lower()
        or needle in r.service_type.lower()
        or needle in r.patient_id.lower()
    ]


def service_family(service_type: str) -> str:
    """Group a catalog service type into CONSULTAS, PROCEDIMIENTOS or OTROS_SERVICIOS."""
    t = service_type.upper()
    for family, keywords in _FAMILY_KEYWORDS:
        if any(k in t for k in keywords):
            return family
    return FAMILY_OTHER
