"""
Validation session: the editor-style triggers around the validator.

    open    -> validate when the document's language matches
    save    -> validate
    close   -> drop the document's diagnostics
    overrides changed -> re-validate every document holding diagnostics
"""

from typing import AbstractSet, Dict, List, Optional

from fragment_check.config import Settings
from fragment_check.database import Database, DatabaseHandle, QueryExecutor
from fragment_check.diagnostics import DiagnosticCollection
from fragment_check.documents import Document
from fragment_check.logger_config import get_logger
from fragment_check.overrides import OVERRIDE_KEYS, OverrideStore
from fragment_check.result import ValidationReport
from fragment_check.strategies import get_strategy
from fragment_check.validator import Validator

logger = get_logger()


class ValidationSession:
    """Routes document events to validation passes."""

    def __init__(
        self,
        validator: Validator,
        overrides: OverrideStore,
        diagnostics: DiagnosticCollection,
        language: str = "haskell",
    ):
        self.validator = validator
        self.overrides = overrides
        self.diagnostics = diagnostics
        self.language = language
        self._documents: Dict[str, Document] = {}

    async def on_open(self, document: Document) -> Optional[ValidationReport]:
        if document.language_id != self.language:
            return None
        return await self._validate(document)

    async def on_save(self, document: Document) -> ValidationReport:
        return await self._validate(document)

    def on_close(self, document: Document) -> None:
        self.diagnostics.delete(document.uri)
        self.validator.forget(document.uri)
        self._documents.pop(document.uri, None)

    async def on_overrides_changed(
        self, changed_keys: AbstractSet[str]
    ) -> List[ValidationReport]:
        """Re-validate flagged documents when an override table changed."""
        if not OVERRIDE_KEYS & set(changed_keys):
            return []

        reports = []
        for uri in self.diagnostics.uris():
            document = self._documents.get(uri)
            if document is None:
                continue
            reports.append(await self._validate(document))
        return reports

    async def refresh_overrides(self) -> List[ValidationReport]:
        """Poll the override store and react to whatever changed."""
        return await self.on_overrides_changed(self.overrides.refresh())

    async def swap_database(self, database: QueryExecutor) -> None:
        """Install a new database; the previous one is released."""
        await self.validator.database.swap(database)
        logger.info("Database connection replaced")

    async def close(self) -> None:
        await self.validator.database.close()

    async def _validate(self, document: Document) -> ValidationReport:
        self._documents[document.uri] = document
        return await self.validator.validate_safely(document, self.overrides.snapshot())


async def create_session(
    settings: Settings,
    diagnostics: Optional[DiagnosticCollection] = None,
) -> ValidationSession:
    """
    Build a session from settings and connect to the database.

    Raises:
        ConfigurationError: If the strategy name is unknown
        DatabaseConnectionError: If the database cannot be reached
    """
    strategy = get_strategy(settings.strategy)
    database = await Database.open(settings)
    diagnostics = diagnostics if diagnostics is not None else DiagnosticCollection()

    validator = Validator(
        DatabaseHandle(database),
        strategy,
        diagnostics,
        start_delimiter=settings.start_delimiter,
        end_delimiter=settings.end_delimiter,
    )
    logger.info(f"Using {strategy.name} check strategy")
    return ValidationSession(
        validator,
        OverrideStore(settings.overrides_path),
        diagnostics,
        language=settings.language,
    )
