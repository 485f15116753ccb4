"""Bantay Backend: Row Import

Spreadsheet / JSON rows arrive as loose dicts. Headers are normalised
through alias tables, the record kind is detected from which fields are
present, and each row becomes either a CrimeRecord or a PopulationRecord.
Rows that fail validation, and crime rows whose caseId or caseNumber is
already known, are skipped with reasons, never raised.
"""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Literal, Optional, Union

from config import CRIME_HEADER_ALIASES, POPULATION_HEADER_ALIASES, DEFAULT_COUNTRY
from models import Barangay, ImportHistory, ImportMode, Incident
from store import DocumentStore, norm
from timeseries import parse_incident_date

logger = logging.getLogger("bantay.importer")

RecordKind = Literal["crime_data", "population_data"]


@dataclass
class CrimeRecord:
    kind = "crime_data"
    incident: Incident
    row: int = 0


@dataclass
class PopulationRecord:
    kind = "population_data"
    barangay: Barangay
    row: int = 0


ImportRecord = Union[CrimeRecord, PopulationRecord]


@dataclass
class ImportResult:
    kind: RecordKind
    mode: ImportMode = "append"
    totalRows: int = 0
    importedCount: int = 0
    skippedCount: int = 0
    duplicatesSkipped: int = 0
    inserted: int = 0
    modified: int = 0
    skippedDetails: list[dict] = field(default_factory=list)
    retrained: bool = False
    retrainError: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "mode": self.mode,
            "totalRows": self.totalRows,
            "importedCount": self.importedCount,
            "skippedCount": self.skippedCount,
            "duplicatesSkipped": self.duplicatesSkipped,
            "inserted": self.inserted,
            "modified": self.modified,
            "skippedDetails": self.skippedDetails,
            "retrained": self.retrained,
            "retrainError": self.retrainError,
        }


class UnknownRecordKindError(ValueError):
    pass


def _header_key(header) -> str:
    return " ".join(str(header).replace("_", " ").split()).lower()


def normalize_row(row: dict, aliases: dict[str, str]) -> dict:
    """Rename known header variants; unknown headers are kept as-is."""
    out = {}
    for header, value in row.items():
        canonical = aliases.get(_header_key(header)) or aliases.get(_header_key(header).replace(" ", ""))
        out[canonical or header] = value
    return out


def detect_record_kind(rows: list[dict]) -> Optional[RecordKind]:
    """Crime rows carry type + confinementDate + barangay; population rows carry
    a name/barangay and a population but no crime type."""
    if not rows:
        return None
    crime = normalize_row(rows[0], CRIME_HEADER_ALIASES)
    if {"type", "confinementDate", "barangay"} <= crime.keys():
        return "crime_data"
    population = normalize_row(rows[0], POPULATION_HEADER_ALIASES)
    if "name" in population and "population" in population and "type" not in crime:
        return "population_data"
    return None


def _text(value) -> str:
    return "" if value is None else str(value).strip()


def _int_or_none(value) -> Optional[int]:
    try:
        return int(float(str(value).replace(",", "")))
    except (TypeError, ValueError):
        return None


def _float_or_none(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_crime_row(raw: dict) -> tuple[Optional[CrimeRecord], list[str]]:
    row = normalize_row(raw, CRIME_HEADER_ALIASES)
    reasons = []
    if not _text(row.get("type")):
        reasons.append("missing type")
    when = parse_incident_date(row.get("confinementDate"))
    if when is None:
        reasons.append("invalid confinementDate")
    for name in ("barangay", "municipality", "province"):
        if not _text(row.get(name)):
            reasons.append(f"missing {name}")
    if reasons:
        return None, reasons

    incident = Incident(
        type=norm(row["type"]),
        barangay=norm(row["barangay"]),
        municipality=norm(row["municipality"]),
        province=norm(row["province"]),
        country=norm(row.get("country")) or DEFAULT_COUNTRY,
        confinementDate=when,
        confinementTime=_text(row.get("confinementTime")) or None,
        status=norm(row.get("status")) or "ONGOING",
        gender=norm(row.get("gender")) or None,
        age=_int_or_none(row.get("age")),
        civilStatus=norm(row.get("civilStatus")) or None,
        caseId=_text(row.get("caseId")) or None,
        caseNumber=_text(row.get("caseNumber")) or None,
    )
    return CrimeRecord(incident), []


def parse_population_row(raw: dict) -> tuple[Optional[PopulationRecord], list[str]]:
    row = normalize_row(raw, POPULATION_HEADER_ALIASES)
    reasons = []
    if not _text(row.get("name")):
        reasons.append("missing barangay name")
    population = _int_or_none(row.get("population"))
    if population is None:
        reasons.append("invalid population")
    if reasons:
        return None, reasons

    barangay = Barangay(
        name=norm(row["name"]),
        municipality=norm(row.get("municipality")),
        province=norm(row.get("province")),
        country=norm(row.get("country")) or DEFAULT_COUNTRY,
        population=population,
        latitude=_float_or_none(row.get("latitude")),
        longitude=_float_or_none(row.get("longitude")),
    )
    return PopulationRecord(barangay), []


def parse_rows(rows: list[dict], kind: RecordKind) -> tuple[list[ImportRecord], list[dict]]:
    parser = parse_crime_row if kind == "crime_data" else parse_population_row
    records, skipped = [], []
    for index, raw in enumerate(rows, start=1):
        record, reasons = parser(raw)
        if record is None:
            skipped.append({"row": index, "reasons": reasons, "sample": raw})
        else:
            record.row = index
            records.append(record)
    return records, skipped


def drop_duplicates(records: list[CrimeRecord],
                    known: set[tuple[str, str]]) -> tuple[list[CrimeRecord], list[dict]]:
    """Skip records whose caseId or caseNumber is already stored or appeared earlier in the batch."""
    seen = set(known)
    kept, duplicates = [], []
    for record in records:
        inc = record.incident
        ids = [(name, value) for name, value in (("caseId", inc.caseId), ("caseNumber", inc.caseNumber)) if value]
        clash = [name for name, value in ids if (name, value) in seen]
        if clash:
            duplicates.append({
                "row": record.row,
                "reasons": [f"duplicate {name}" for name in clash],
                "sample": {
                    "type": inc.type,
                    "confinementDate": str(inc.confinementDate),
                    "barangay": inc.barangay,
                    "municipality": inc.municipality,
                    "province": inc.province,
                },
            })
            continue
        seen.update(ids)
        kept.append(record)
    return kept, duplicates


async def import_rows(
    store: DocumentStore,
    rows: list[dict],
    filename: str = "",
    kind: Optional[RecordKind] = None,
    mode: ImportMode = "append",
    retrain: Optional[Callable[[], Awaitable]] = None,
) -> ImportResult:
    """Validate, insert and record history for a batch of rows.

    mode="replace" clears the target collection (incidents or barangays)
    before inserting. `retrain` runs after a crime import that stored at
    least one row; its failure is logged and reported, the import stands.
    """
    kind = kind or detect_record_kind(rows)
    if kind is None:
        raise UnknownRecordKindError("Could not detect data type from headers")

    records, skipped = parse_rows(rows, kind)
    result = ImportResult(kind=kind, mode=mode, totalRows=len(rows), skippedDetails=skipped)
    source = filename or "<rows>"

    if kind == "crime_data":
        if mode == "replace":
            removed = await store.clear_incidents()
            logger.info(f"Replace import {source}: cleared {removed} incidents")
        records, duplicates = drop_duplicates(records, await store.case_identifiers())
        result.duplicatesSkipped = len(duplicates)
        result.skippedDetails = sorted(skipped + duplicates, key=lambda d: d["row"])
        result.importedCount = await store.add_incidents([r.incident for r in records])
    else:
        if mode == "replace":
            removed = await store.clear_barangays()
            logger.info(f"Replace import {source}: cleared {removed} barangays")
        result.inserted, result.modified = await store.upsert_barangays([r.barangay for r in records])
        result.importedCount = result.inserted + result.modified
    result.skippedCount = len(result.skippedDetails)

    if result.skippedCount:
        logger.warning(f"Import {source}: skipped {result.skippedCount} of {len(rows)} rows "
                       f"({result.duplicatesSkipped} duplicates)")
    logger.info(f"Imported {result.importedCount} {kind} rows from {source}")

    if retrain is not None and kind == "crime_data" and result.importedCount > 0:
        logger.info("Retraining sequence model with new data")
        try:
            await retrain()
            result.retrained = True
        except Exception as e:
            logger.error(f"Retraining after import failed: {e}")
            result.retrainError = str(e) or type(e).__name__

    await store.record_import(ImportHistory(
        type=kind,
        filename=filename,
        mode=mode,
        totalRows=result.totalRows,
        importedCount=result.importedCount,
        skippedCount=result.skippedCount,
        duplicatesSkipped=result.duplicatesSkipped,
        retrained=result.retrained,
    ))
    return result
