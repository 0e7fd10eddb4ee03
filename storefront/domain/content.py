"""CMS sections: known field registry and the raw-JSON fallback.

A stored section resolves to either `KnownContent` (its page/section pair is in
the registry, so the editor renders typed fields) or `UnknownContent` (fields
are inferred from whatever JSON is stored).
"""
import json
from enum import Enum
from typing import Any, Dict, List, Literal, Union
from pydantic import BaseModel

from storefront.domain.exceptions import InvalidContentError


class FieldType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    IMAGE = "image"
    ARRAY = "array"
    NUMBER = "number"
    BOOLEAN = "boolean"


class ContentField(BaseModel):
    key: str
    type: FieldType
    label: str


def _fields(*entries) -> List[ContentField]:
    return [ContentField(key=key, type=FieldType(type_), label=label) for key, type_, label in entries]


KNOWN_SECTIONS: Dict[str, List[ContentField]] = {
    "home/hero": _fields(
        ("badge", "text", "Hero Badge"),
        ("headline", "textarea", "Headline (HTML supported)"),
        ("subheadline", "textarea", "Subheadline"),
        ("cta_primary_text", "text", "Primary CTA Text"),
        ("cta_primary_link", "text", "Primary CTA Link"),
        ("cta_secondary_text", "text", "Secondary CTA Text"),
        ("cta_secondary_link", "text", "Secondary CTA Link"),
        ("video_url", "text", "Background Video URL"),
        ("poster_url", "image", "Video Poster Image"),
    ),
    "home/impact-counter": _fields(
        ("title", "text", "Section Title"),
        ("subtitle", "textarea", "Section Subtitle"),
        ("stats", "array", "Stats (JSON array of {value, label, icon})"),
    ),
    "home/how-it-works": _fields(
        ("title", "text", "Section Title"),
        ("subtitle", "textarea", "Section Subtitle"),
        ("steps", "array", "Steps (JSON array of {icon, title, description})"),
    ),
    "home/partner-cta": _fields(
        ("title", "text", "Title"),
        ("description", "textarea", "Description"),
        ("cta_text", "text", "Button Text"),
        ("cta_link", "text", "Button Link"),
        ("image", "image", "Background Image"),
    ),
    "home/featured-products": _fields(
        ("title", "text", "Section Title"),
        ("subtitle", "text", "Section Subtitle"),
    ),
    "global/footer": _fields(
        ("tagline", "textarea", "Footer Tagline"),
        ("address", "textarea", "Office Address"),
        ("email", "text", "Contact Email"),
        ("phone", "text", "Contact Phone"),
        ("social_links", "array", "Social Links (JSON array of {platform, url})"),
        ("copyright", "text", "Copyright Text"),
    ),
    "global/settings": _fields(
        ("siteName", "text", "Site Name"),
        ("logoUrl", "image", "Logo URL"),
        ("contactEmail", "text", "Contact Email"),
        ("contactPhone", "text", "Contact Phone"),
        ("address", "textarea", "Address"),
        ("footerText", "textarea", "Footer Tagline"),
    ),
    "global/seo": _fields(
        ("title", "text", "Default Page Title"),
        ("description", "textarea", "Meta Description"),
        ("keywords", "text", "Keywords (comma separated)"),
    ),
    "global/newsletter": _fields(
        ("title", "text", "Newsletter Title"),
        ("subtitle", "textarea", "Newsletter Subtitle"),
        ("cta_text", "text", "Button Text"),
        ("discount_text", "text", "Discount/Incentive Text"),
    ),
    "global/email-templates": _fields(
        ("order_confirmation", "array", "Order Confirmation (JSON {subject, greeting})"),
        ("order_shipped", "array", "Order Shipped (JSON {subject, greeting})"),
        ("order_delivered", "array", "Order Delivered (JSON {subject, greeting})"),
        ("welcome", "array", "Welcome Email (JSON {subject, greeting})"),
    ),
    "about/story": _fields(
        ("title", "text", "Section Title"),
        ("content", "textarea", "Story Content"),
        ("image", "image", "Story Image"),
    ),
    "about/team": _fields(
        ("title", "text", "Section Title"),
        ("members", "array", "Team Members (JSON array of {name, role, image, bio})"),
    ),
    "contact/info": _fields(
        ("email", "text", "Contact Email"),
        ("phone", "text", "Contact Phone"),
        ("address", "textarea", "Office Address"),
        ("hours", "text", "Business Hours"),
    ),
    "faq/questions": _fields(
        ("questions", "array", "FAQ Items (JSON array of {question, answer})"),
    ),
    "privacy/content": _fields(
        ("title", "text", "Page Title"),
        ("last_updated", "text", "Last Updated Date"),
        ("content", "textarea", "Privacy Policy Content"),
    ),
    "terms/content": _fields(
        ("title", "text", "Page Title"),
        ("last_updated", "text", "Last Updated Date"),
        ("content", "textarea", "Terms of Service Content"),
    ),
}


class KnownContent(BaseModel):
    kind: Literal["known"] = "known"
    schema_fields: List[ContentField]
    values: Dict[str, Any]


class UnknownContent(BaseModel):
    kind: Literal["unknown"] = "unknown"
    raw: Dict[str, Any]
    schema_fields: List[ContentField] = []


SectionContent = Union[KnownContent, UnknownContent]


def parse_content(content: Any) -> Dict[str, Any]:
    """Stored content may be a JSON string or an object; anything else reads as empty."""
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except ValueError:
            return {}
    if isinstance(content, dict):
        return content
    return {}


def parse_document(text: str) -> Dict[str, Any]:
    """Raw JSON editor input. Unlike parse_content this one rejects bad input."""
    try:
        document = json.loads(text)
    except ValueError as e:
        raise InvalidContentError(f"Invalid JSON format: {e}")
    if not isinstance(document, dict):
        raise InvalidContentError("Section content must be a JSON object")
    return document


def infer_field_type(value: Any) -> FieldType:
    if isinstance(value, str):
        if value.startswith("http") or "supabase" in value:
            return FieldType.IMAGE
        if len(value) > 100:
            return FieldType.TEXTAREA
        return FieldType.TEXT
    # bool is a subclass of int
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, float)):
        return FieldType.NUMBER
    return FieldType.ARRAY


def infer_fields(values: Dict[str, Any]) -> List[ContentField]:
    return [
        ContentField(key=key, type=infer_field_type(value), label=key.replace("_", " ").capitalize())
        for key, value in values.items()
    ]


def resolve_section(page_name: str, section_key: str, content: Any) -> SectionContent:
    values = parse_content(content)
    known = KNOWN_SECTIONS.get(f"{page_name}/{section_key}")
    if known is not None:
        return KnownContent(schema_fields=known, values=values)
    return UnknownContent(raw=values, schema_fields=infer_fields(values))


def coerce_field_value(field_type: FieldType, value: Any) -> Any:
    if field_type == FieldType.NUMBER:
        if isinstance(value, bool):
            raise InvalidContentError("Expected a number")
        if isinstance(value, (int, float)):
            return value
        try:
            return float(value)
        except (TypeError, ValueError):
            raise InvalidContentError(f"Expected a number, got {value!r}")
    if field_type == FieldType.BOOLEAN:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes", "on")
        return bool(value)
    if field_type == FieldType.ARRAY:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError:
                # kept as typed until it parses
                return value
        return value
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def apply_field_changes(section: SectionContent, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Merges edited field values into the stored document, coercing by field type."""
    if isinstance(section, KnownContent):
        values = dict(section.values)
    else:
        values = dict(section.raw)
    types = {field.key: field.type for field in section.schema_fields}

    for key, value in changes.items():
        field_type = types.get(key)
        if field_type is None:
            field_type = infer_field_type(value)
        values[key] = coerce_field_value(field_type, value)
    return values
