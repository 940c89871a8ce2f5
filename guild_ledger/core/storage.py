"""Simple JSON-backed storage for extraction templates."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from .models import Template, _now

logger = logging.getLogger(__name__)


class TemplateStorage:
    """Persist :class:`Template` objects.

    Data is written to a single JSON file on every mutation. At most one
    template per module carries ``is_default``; marking a template as the
    default clears the flag on its siblings.
    """

    def __init__(self, path: Path) -> None:
        """Initialise storage using JSON file at ``path``."""
        self.path = Path(path)
        self._templates: dict[str, Template] = {}
        if self.path.exists():
            self._load()
        else:
            self._save()

    # ------------------------------------------------------------------
    # Internal helpers
    def _load(self) -> None:
        data = json.loads(self.path.read_text(encoding="utf-8"))
        templates = [Template.from_payload(item) for item in data.get("templates", [])]
        self._templates = {t.id: t for t in templates}

    def _save(self) -> None:
        data = {"templates": [t.to_payload() for t in self._templates.values()]}
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")

    def _clear_default(self, module: str, keep: str) -> None:
        for template_id, template in self._templates.items():
            if template.module == module and template.is_default and template_id != keep:
                self._templates[template_id] = template.model_copy(update={"is_default": False})

    # ------------------------------------------------------------------
    # Template operations
    def add(self, template: Template) -> Template:
        """Persist a new ``template`` and return it."""
        template.check_well_formed()
        self._templates[template.id] = template
        if template.is_default:
            self._clear_default(template.module, template.id)
        self._save()
        logger.info("Added %s template %r (%s)", template.module, template.name, template.id)
        return template

    def get(self, template_id: str) -> Template | None:
        return self._templates.get(template_id)

    def list(self, module: str | None = None, is_default: bool | None = None) -> list[Template]:
        """Return templates matching the filters, most recently updated first."""
        found = [
            t
            for t in self._templates.values()
            if (module is None or t.module == module)
            and (is_default is None or t.is_default == is_default)
        ]
        return sorted(found, key=lambda t: t.updated_at, reverse=True)

    def update(self, template_id: str, changes: dict[str, Any]) -> Template:
        """Apply ``changes`` (wire or attribute names) to a stored template.

        Raises ``KeyError`` if no template has ``template_id``.
        """
        current = self._templates[template_id]
        names = {info.alias or name: name for name, info in Template.model_fields.items()}
        payload = current.model_dump()
        for key, value in changes.items():
            payload[names.get(key, key)] = value
        payload.update(id=current.id, created_at=current.created_at, updated_at=_now())
        updated = Template.from_payload(payload)
        updated.check_well_formed()
        self._templates[template_id] = updated
        if updated.is_default:
            self._clear_default(updated.module, template_id)
        self._save()
        logger.info("Updated template %s", template_id)
        return updated

    def delete(self, template_id: str) -> bool:
        if self._templates.pop(template_id, None) is None:
            return False
        self._save()
        logger.info("Deleted template %s", template_id)
        return True

    def set_default(self, template_id: str) -> Template:
        return self.update(template_id, {"isDefault": True})

    def default_for(self, module: str) -> Template | None:
        """Return the default template of ``module``, if one is set."""
        return next(iter(self.list(module=module, is_default=True)), None)
