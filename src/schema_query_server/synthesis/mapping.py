"""
Field Mapping

CSV -> table field mapping. Same generate-then-validate shape as query
synthesis: the context is the CSV's inferred column types plus the target
table's columns, and the model returns a `FieldMappingSet`.

Generated mappings are filtered before they reach the caller:

- the source header must exist in the CSV
- the target field must exist on the table (case-insensitive)
- the first mapping for a header wins

Headers left without a mapping are reported in `unmapped_headers`; they are
never defaulted to a best guess.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Union

from ..config import settings
from ..graph.schema_graph import SchemaGraph
from ..ingest.csv_ingestor import (
    CsvIngestError,
    PayloadTooLargeError,
    TabularIngestor,
    ensure_within_limit,
)
from ..llm.client import GenerationCapability, GenerationError
from .models import (
    CsvInfo,
    FieldMapping,
    FieldMappingSet,
    MappingMetadata,
    MappingResult,
    MappingSucceeded,
    Rejection,
    RejectionStage,
)
from .prompts import build_mapping_prompt

logger = logging.getLogger("sqs.mapping")


MAX_RETURN_SAMPLE = 50


def _reject(stage: RejectionStage, reason: str, **kwargs) -> Rejection:
    logger.info("Field mapping rejected at %s stage: %s", stage, reason)
    return Rejection(stage=stage, reason=reason, **kwargs)


class FieldMapper:
    def __init__(
        self,
        llm: GenerationCapability,
        ingestor: Optional[TabularIngestor] = None,
        max_bytes: Optional[int] = None,
    ) -> None:
        self.llm = llm
        self.ingestor = ingestor or TabularIngestor()
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_csv_bytes

    @staticmethod
    def filter_mappings(
        mappings: Sequence[FieldMapping],
        headers: Sequence[str],
        target_columns: Dict[str, str],
    ) -> List[FieldMapping]:
        """
        Keep mappings whose header and target both exist.

        `target_columns` maps lower-cased column names to their canonical
        spelling, which replaces the generated `target_field`.
        """
        header_set = set(headers)
        seen: set = set()
        kept: List[FieldMapping] = []

        for m in mappings:
            if m.source_field not in header_set or m.source_field in seen:
                continue
            canonical = target_columns.get(m.target_field.lower())
            if canonical is None:
                continue
            seen.add(m.source_field)
            kept.append(m.model_copy(update={"target_field": canonical}))

        return kept

    async def map_fields(
        self,
        table: str,
        data: Union[bytes, str],
        graph: SchemaGraph,
        has_header: bool = True,
        expected_columns: Optional[Sequence[str]] = None,
        return_sample: int = 5,
    ) -> MappingResult:
        table = (table or "").strip()
        if not table:
            return _reject("input", "A target table name is required.")

        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        try:
            ensure_within_limit(len(raw), self.max_bytes)
        except PayloadTooLargeError as exc:
            return _reject(
                "input", str(exc),
                suggestions=["Split the file into smaller parts."],
                details={"file_size_bytes": len(raw), "max_bytes": self.max_bytes},
            )

        try:
            parsed = self.ingestor.parse(raw, has_header=has_header)
        except CsvIngestError as exc:
            return _reject("input", f"CSV could not be parsed: {exc}")

        headers = list(dict.fromkeys(parsed.columns))
        if not headers:
            return _reject("input", "The CSV file contains no columns.")

        if expected_columns:
            missing = [c for c in expected_columns if c not in headers]
            if missing:
                return _reject(
                    "input",
                    f"CSV is missing expected columns: {', '.join(missing)}",
                    details={"missing_columns": missing, "columns": headers},
                )

        info = graph.get_table_info(table)
        if info is None:
            return _reject(
                "schema", f"Table '{table}' was not found in the discovered schema.",
                suggestions=["Check the table name."],
            )
        if not info.columns:
            return _reject("schema", f"No columns were discovered for table '{info.name}'.")

        column_payload = [
            {
                "name": c.name,
                "label": c.label or c.name,
                "type": c.data_type,
                "nullable": c.is_nullable,
                "primaryKey": c.is_primary_key,
                "maxLength": c.max_length,
            }
            for c in info.columns
        ]
        prompt = build_mapping_prompt(info.name, column_payload, headers, parsed.types)

        try:
            generated = await self.llm.generate(prompt, FieldMappingSet)
        except GenerationError as exc:
            return _reject(
                "generation", f"Field mapping generation failed: {exc}",
                suggestions=["Retry the request later."],
                details={"cause": repr(exc.__cause__ or exc)},
            )

        by_lower = {c.name.lower(): c.name for c in info.columns}
        types = {c.name: c.data_type for c in info.columns}

        mappings = [
            m.model_copy(update={"target_type": types[m.target_field]})
            for m in self.filter_mappings(generated.mappings, headers, by_lower)
        ]
        mapped = {m.source_field for m in mappings}
        unmapped = [h for h in headers if h not in mapped]

        sample_size = max(0, min(return_sample, MAX_RETURN_SAMPLE))

        logger.info(
            "Mapped %d/%d CSV headers to %s",
            len(mappings),
            len(headers),
            info.name,
        )

        return MappingSucceeded(
            table=info.name,
            mappings=mappings,
            unmapped_headers=unmapped,
            csv_info=CsvInfo(
                total_rows=parsed.total_rows,
                columns=parsed.columns,
                types=dict(parsed.types),
                sample=parsed.rows[:sample_size] if sample_size else None,
            ),
            metadata=MappingMetadata(
                total_csv_headers=len(headers),
                successful_mappings=len(mappings),
                unmapped_headers=unmapped,
                file_size_bytes=len(raw),
            ),
        )
