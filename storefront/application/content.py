import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from storefront.domain.content import (
    SectionContent, apply_field_changes, parse_content, parse_document, resolve_section
)
from storefront.domain.exceptions import ContentNotFoundError, DuplicateSectionError, ValidationError
from storefront.domain.models import SiteContent

logger = logging.getLogger(__name__)

# Sections that hold settings, never served to the storefront
PRIVATE_PAGES = {"integrations", "admin"}


class SectionEditorView(BaseModel):
    section: SiteContent
    editor: SectionContent = Field(discriminator="kind")


def normalize_key(value: str) -> str:
    return re.sub(r"\s+", "-", (value or "").strip().lower())


async def _load(uow, content_id: str) -> SiteContent:
    section = await uow.content.get_by_id(content_id)
    if not section:
        raise ContentNotFoundError(f"Content section {content_id} not found")
    return section


class ListSectionsUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, page_name: Optional[str] = None, search: Optional[str] = None) -> List[SiteContent]:
        async with self._uow() as uow:
            sections = await uow.content.list(page_name=page_name if page_name != "all" else None)
        if search:
            term = search.lower()
            sections = [s for s in sections if term in s.page_name.lower() or term in s.section_key.lower()]
        return sections


class GetSectionEditorUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, content_id: str) -> SectionEditorView:
        async with self._uow() as uow:
            section = await _load(uow, content_id)
        return SectionEditorView(
            section=section,
            editor=resolve_section(section.page_name, section.section_key, section.content),
        )


class UpdateSectionFieldsUseCase:
    """Field-by-field edit, values coerced by the section's field types."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, content_id: str, changes: Dict[str, Any]) -> SiteContent:
        async with self._uow() as uow:
            section = await _load(uow, content_id)
            editor = resolve_section(section.page_name, section.section_key, section.content)
            content = apply_field_changes(editor, changes)
            await uow.content.update_content(section.id, content)
            await uow.commit()

        logger.info(f"Content {section.registry_key} updated ({len(changes)} fields)")
        return section.model_copy(update={"content": content, "updated_at": datetime.now(timezone.utc)})


class UpdateSectionDocumentUseCase:
    """Raw JSON edit. Malformed input leaves the stored section untouched."""

    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, content_id: str, text: str) -> SiteContent:
        content = parse_document(text)
        async with self._uow() as uow:
            section = await _load(uow, content_id)
            await uow.content.update_content(section.id, content)
            await uow.commit()

        logger.info(f"Content {section.registry_key} replaced from raw JSON")
        return section.model_copy(update={"content": content, "updated_at": datetime.now(timezone.utc)})


class CreateSectionUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, page_name: str, section_key: str, content: Any = None) -> SiteContent:
        page_name = normalize_key(page_name)
        section_key = normalize_key(section_key)
        if not page_name or not section_key:
            raise ValidationError("Page name and section key are required")

        section = SiteContent(
            id=str(uuid.uuid4()),
            page_name=page_name,
            section_key=section_key,
            content=parse_content(content),
            is_active=True,
            updated_at=datetime.now(timezone.utc),
        )
        async with self._uow() as uow:
            if await uow.content.get_by_key(page_name, section_key):
                raise DuplicateSectionError(f"Section {section.registry_key} already exists")
            await uow.content.create(section)
            await uow.commit()

        logger.info(f"Content section {section.registry_key} created")
        return section


class DeleteSectionUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, content_id: str) -> None:
        async with self._uow() as uow:
            section = await _load(uow, content_id)
            await uow.content.delete(section.id)
            await uow.commit()
        logger.info(f"Content section {section.registry_key} deleted")


class GetPublicSectionUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, page_name: str, section_key: str) -> Dict[str, Any]:
        if page_name in PRIVATE_PAGES:
            raise ContentNotFoundError(f"Section {page_name}/{section_key} not found")
        async with self._uow() as uow:
            section = await uow.content.get_by_key(page_name, section_key)
        if not section or not section.is_active:
            raise ContentNotFoundError(f"Section {page_name}/{section_key} not found")
        return parse_content(section.content)
