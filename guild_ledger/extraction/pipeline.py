"""End-to-end import: recognized text to stored record."""

from __future__ import annotations

import datetime as dt
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..adapters.base import RecognitionAdapter
from ..config import DEFAULT_DATE_FORMATS
from ..core.models import EVENT_MODULES, Template
from ..core.storage import TemplateStorage
from ..data.models import AssembledRecord, ImportOutcome, RecognizedText
from ..data.store import RecordStore, call_collaborator
from ..errors import InvalidTemplateError, LedgerError
from .assembler import RecordAssembler
from .coercion import FieldCoercer
from .engine import FieldExtractor

logger = logging.getLogger(__name__)


class ImportPipeline:
    """Run extraction, coercion and assembly for one template, then store.

    Parameters
    ----------
    templates:
        Where templates are looked up by id or module default.
    stores:
        Record stores keyed by event module. Guild member lists are never
        stored here; the roster collaborator owns them.
    recognizer:
        Optional recognition collaborator for screenshot imports.

    """

    def __init__(
        self,
        templates: TemplateStorage,
        stores: Mapping[str, RecordStore] | None = None,
        recognizer: RecognitionAdapter | None = None,
        date_formats: Sequence[str] = DEFAULT_DATE_FORMATS,
    ) -> None:
        self.templates = templates
        self.stores = dict(stores or {})
        self.recognizer = recognizer
        self.extractor = FieldExtractor(date_formats)
        self.coercer = FieldCoercer(date_formats)
        self.assembler = RecordAssembler()

    # ------------------------------------------------------------------
    def template_for(self, module: str, template_id: str | None = None) -> Template:
        """Return template ``template_id`` or the default template of ``module``."""
        if template_id is not None:
            template = self.templates.get(template_id)
            if template is None:
                raise InvalidTemplateError(template_id, "no such template")
            if template.module != module:
                raise InvalidTemplateError(
                    template.name, f"belongs to module '{template.module}', not '{module}'"
                )
            return template
        template = self.templates.default_for(module)
        if template is None:
            raise InvalidTemplateError(module, "no default template for module")
        return template

    def extract_record(
        self,
        text: RecognizedText | str,
        template: Template,
        overrides: Mapping[str, Any] | None = None,
    ) -> AssembledRecord:
        """Turn recognized ``text`` into a record without storing it."""
        if isinstance(text, str):
            text = RecognizedText.from_text(text)
        logger.info(
            "Extracting %s record with template %s (updated %s)",
            template.module,
            template.id,
            template.updated_at.isoformat(),
        )
        extraction = self.extractor.extract(text, template)
        coerced = self.coercer.coerce_fields(extraction, template, overrides)
        record = self.assembler.assemble(coerced, template)
        return AssembledRecord(record=record, template_id=template.id, warnings=coerced.warnings)

    async def _store(self, module: str, assembled: AssembledRecord) -> None:
        if module not in EVENT_MODULES:
            return
        store = self.stores.get(module)
        if store is None:
            raise LookupError(f"no record store configured for module '{module}'")
        await store.upsert(assembled.record)

    # ------------------------------------------------------------------
    async def import_screenshot(
        self,
        images: Sequence[bytes],
        module: str,
        date: dt.date | None = None,
        template_id: str | None = None,
        save: bool = True,
    ) -> AssembledRecord:
        """Recognize ``images`` as one record and optionally store it.

        Multiple screenshots are combined in order, separated the way the
        uploader separates them, before any rule runs.
        """
        if self.recognizer is None:
            raise RuntimeError("ImportPipeline has no recognition collaborator")
        template = self.template_for(module, template_id)
        parts = [
            await call_collaborator("recognize screenshot", self.recognizer.recognize(image, module))
            for image in images
        ]
        overrides = {"date": date} if date is not None else None
        assembled = self.extract_record(RecognizedText.combine(parts), template, overrides)
        if save:
            await self._store(module, assembled)
        return assembled

    async def import_texts(
        self,
        texts: Sequence[RecognizedText | str],
        module: str,
        date: dt.date | None = None,
        template_id: str | None = None,
    ) -> list[ImportOutcome]:
        """Import each text as an independent record.

        Template defects raise before any text is processed. Data defects
        fail only the record they occur in.
        """
        template = self.template_for(module, template_id)
        self.extractor.validate(template)
        overrides = {"date": date} if date is not None else None

        outcomes: list[ImportOutcome] = []
        for index, text in enumerate(texts):
            outcome = ImportOutcome(index=index)
            try:
                assembled = self.extract_record(text, template, overrides)
                await self._store(module, assembled)
                outcome.warnings = assembled.warnings
                outcome.date = getattr(assembled.record, "date", None)
            except LedgerError as exc:
                outcome.ok = False
                outcome.error_kind = exc.kind
                outcome.message = exc.message
                logger.warning("Text #%d not imported: %s", index, exc.message)
            outcomes.append(outcome)
        return outcomes
