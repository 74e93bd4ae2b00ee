"""
Terminology loader for NAMASTE FHIR Gateway.

Loads NAMASTE and ICD-11 concepts and curated mappings from CSV files.
The CSV files shipped in ``namaste_fhir/data`` form the default seed.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd
from pydantic import ValidationError

from namaste_fhir.constants import ICD11_SYSTEM, ORIGIN_CURATED, SYSTEM_URIS, normalize_system
from namaste_fhir.db.repositories import ConceptRepository, MappingStore
from namaste_fhir.schema import ConceptRecord, MappingRecord

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parent.parent / "data"

PathLike = Union[str, Path]


class ConceptLoader:
    """Bulk loader for concepts and mappings."""

    def __init__(self, concepts: ConceptRepository, mappings: MappingStore):
        self.concepts = concepts
        self.mappings = mappings

    async def load_concepts_csv(self, csv_path: PathLike, system: Optional[str] = None) -> Dict[str, Any]:
        """
        Load concepts from a CSV file.

        Args:
            csv_path: CSV with ``code`` and ``display`` columns, plus optional
                ``definition``, ``system``, ``language``, ``status`` and a JSON
                ``properties`` column; other columns become properties
            system: System for every row; otherwise taken from the ``system`` column

        Returns:
            Dictionary with loading statistics

        Raises:
            ValueError: Required columns are missing
        """
        df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)

        required_columns = ["code", "display"]
        if system is None:
            required_columns.append("system")
        missing_columns = [col for col in required_columns if col not in df.columns]
        if missing_columns:
            raise ValueError(f"Missing required columns: {missing_columns}")

        known = {"code", "display", "definition", "system", "language", "status", "properties"}
        records = []
        rejected = 0

        for _, row in df.iterrows():
            row_system = normalize_system(system or row["system"])
            if row_system not in SYSTEM_URIS:
                logger.warning("Skipping %s: unknown system %r", row["code"], row_system)
                rejected += 1
                continue

            properties = _parse_properties(row.get("properties", ""))
            properties.update(
                {col: row[col] for col in df.columns if col not in known and row[col] != ""}
            )

            try:
                records.append(ConceptRecord(
                    system=row_system,
                    code=row["code"].strip(),
                    display=row["display"].strip(),
                    definition=row.get("definition") or None,
                    language=row.get("language") or "en",
                    status=row.get("status") or "active",
                    properties=properties,
                ))
            except ValidationError as e:
                logger.warning("Skipping concept row %r: %s", row.get("code"), e)
                rejected += 1

        loaded = await self.concepts.bulk_insert(records)
        logger.info("Loaded %d concepts from %s (%d skipped)", loaded, csv_path, len(df) - loaded)

        return {
            "loaded": loaded,
            "skipped": len(records) - loaded,
            "rejected": rejected,
            "total_processed": len(df),
        }

    async def load_mappings_csv(self, csv_path: PathLike, curator: str = "seed") -> Dict[str, Any]:
        """
        Load curated mappings from a CSV file.

        Rows are upserted on their (source, target) pair, so reloading a file
        updates existing mappings rather than duplicating them.
        """
        df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)

        required_columns = ["source_system", "source_code", "target_code", "equivalence", "confidence"]
        missing_columns = [col for col in required_columns if col not in df.columns]
        if missing_columns:
            raise ValueError(f"Missing required columns: {missing_columns}")

        upserted = 0
        rejected = 0
        for _, row in df.iterrows():
            try:
                mapping = MappingRecord(
                    source_system=normalize_system(row["source_system"]),
                    source_code=row["source_code"].strip(),
                    target_system=normalize_system(row.get("target_system")) or ICD11_SYSTEM,
                    target_code=row["target_code"].strip(),
                    target_display=row.get("target_display") or None,
                    equivalence=row["equivalence"].strip(),
                    confidence=float(row["confidence"]),
                    comment=row.get("comment") or None,
                    status=row.get("status") or "active",
                    origin=ORIGIN_CURATED,
                    curator=curator,
                )
            except (ValidationError, ValueError) as e:
                logger.warning("Skipping mapping row %r: %s", row.get("source_code"), e)
                rejected += 1
                continue

            await self.mappings.upsert(mapping)
            upserted += 1

        logger.info("Loaded %d mappings from %s", upserted, csv_path)
        return {"upserted": upserted, "rejected": rejected, "total_processed": len(df)}

    async def seed_defaults(self, data_dir: PathLike = DATA_DIR) -> Dict[str, Any]:
        """Load the bundled NAMASTE, ICD-11 and mapping seed files."""
        data_dir = Path(data_dir)
        return {
            "namaste": await self.load_concepts_csv(data_dir / "namaste_concepts.csv"),
            "icd11": await self.load_concepts_csv(data_dir / "icd11_concepts.csv", system=ICD11_SYSTEM),
            "mappings": await self.load_mappings_csv(data_dir / "concept_mappings.csv"),
        }


def _parse_properties(raw: Any) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return {"note": str(raw)}
    return value if isinstance(value, dict) else {"value": value}
