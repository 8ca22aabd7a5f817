"""
Data export and import for a user's record graph.

Export reads (never writes) the user's cases, profile and evidence. The
three reads run concurrently and are joined with wait-for-all semantics:
a failed read is logged and replaced with an empty value, so export always
produces a document.

Import is insert-only. The whole document is validated before the single
batch insert, so a malformed document causes zero writes, and existing
records are never updated or deleted.

Known limitation: evidence entries in an imported document are NOT
re-imported. They point at stored files this package does not manage.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import config
from account.errors import FormatError, ServiceError
from account.models import CaseFile, EvidenceItem, Profile
from portability.document import (
    ExportDocument,
    map_case_for_import,
    parse_document,
    validate_cases,
)
from store.base import Principal, StoreAdapter, StoreError

logger = logging.getLogger(__name__)


class DataPortabilityEngine:
    """Exports and imports a user's data as a portable JSON document."""

    def __init__(self, store: StoreAdapter) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def _fetch_cases(self, user_id: str) -> List[CaseFile]:
        rows = self.store.select(config.TABLE_CASES, {"user_id": user_id})
        return [CaseFile.from_row(row) for row in rows]

    def _fetch_profile(self, user_id: str) -> Optional[Profile]:
        rows = self.store.select(config.TABLE_PROFILES, {"id": user_id})
        return Profile.from_row(rows[0]) if rows else None

    def _fetch_evidence(self, user_id: str) -> List[EvidenceItem]:
        # Evidence has no owner column; ownership comes through its case
        rows = self.store.select(
            config.TABLE_EVIDENCE,
            {f"{config.TABLE_CASES}.user_id": user_id},
            columns=f"*, {config.TABLE_CASES}!inner(user_id)",
        )
        return [EvidenceItem.from_row(row) for row in rows]

    def export_data(self, principal: Principal) -> ExportDocument:
        """
        Snapshot everything the principal owns.

        Args:
            principal: The signed-in principal.

        Returns:
            ExportDocument stamped with the current time and the user id.
        """
        user_id = principal.id
        with ThreadPoolExecutor(max_workers=3, thread_name_prefix="export") as pool:
            futures = {
                "cases": pool.submit(self._fetch_cases, user_id),
                "profile": pool.submit(self._fetch_profile, user_id),
                "evidence": pool.submit(self._fetch_evidence, user_id),
            }
            defaults: Dict[str, Any] = {"cases": [], "profile": None, "evidence": []}
            results: Dict[str, Any] = {}
            for part, future in futures.items():
                try:
                    results[part] = future.result()
                except Exception as e:
                    logger.warning(f"Export of {part} failed for {user_id}, leaving it empty: {e}")
                    results[part] = defaults[part]

        document = ExportDocument(
            user_id=user_id,
            profile=results["profile"],
            cases=results["cases"],
            evidence=results["evidence"],
        )
        logger.info(
            f"Exported {len(document.cases)} case(s) and {len(document.evidence)} "
            f"evidence item(s) for {user_id}"
        )
        return document

    def export_to_file(self, principal: Principal, directory: Optional[Path] = None) -> Path:
        """
        Export and write the document as a downloadable JSON file.

        Args:
            principal: The signed-in principal.
            directory: Target directory (defaults to config.EXPORT_DIR).

        Returns:
            Path to the written file.
        """
        document = self.export_data(principal)
        target_dir = Path(directory) if directory else config.EXPORT_DIR
        target_dir.mkdir(parents=True, exist_ok=True)

        day = document.export_date.astimezone(timezone.utc).strftime("%Y-%m-%d")
        stem = f"{config.EXPORT_FILE_PREFIX}-{day}"
        path = target_dir / f"{stem}.json"
        counter = 2
        while path.exists():
            path = target_dir / f"{stem}-{counter}.json"
            counter += 1
        path.write_text(document.to_json(), encoding="utf-8")
        logger.info(f"Export written to {path}")
        return path

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    def import_data(self, principal: Principal, payload: Union[str, bytes, Dict[str, Any]]) -> int:
        """
        Add the cases in an exported document to the principal's account.

        Args:
            principal: The importing (signed-in) principal; owns every new case.
            payload: JSON text/bytes or a decoded document.

        Returns:
            Number of cases inserted.

        Raises:
            FormatError: The document is malformed (no writes happened).
            ServiceError: The batch insert failed.
        """
        document = parse_document(payload)
        entries = validate_cases(document)
        rows = [map_case_for_import(entry, principal.id) for entry in entries]

        evidence = document.get("evidence")
        if isinstance(evidence, list) and evidence:
            logger.info(f"Skipping {len(evidence)} evidence item(s); evidence is not re-imported")

        if not rows:
            logger.info("Import document contains no cases")
            return 0

        try:
            self.store.insert(config.TABLE_CASES, rows)
        except StoreError as e:
            raise ServiceError(f"Import failed: {e.message}", e.code) from e

        logger.info(f"Imported {len(rows)} case(s) for {principal.id}")
        return len(rows)

    def import_file(self, principal: Principal, path: Path) -> int:
        """
        Read an export file and import it.

        Raises:
            FormatError: Unreadable or malformed file.
            ServiceError: The batch insert failed.
        """
        try:
            payload = Path(path).read_bytes()
        except (IOError, OSError) as e:
            raise FormatError(f"Could not read import file: {e}") from e
        return self.import_data(principal, payload)
