from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Tuple, Union

from pydantic import BaseModel, Field

from .errors import UnknownSchemaError

ColumnType = Literal["string", "integer", "decimal", "boolean", "timestamp", "date", "json"]

TIMESTAMP_COLUMNS = ("created_at", "updated_at")


class Sheet(str, Enum):
    WEBSITE_CONTENT = "website_content"
    BLOG_POSTS = "blog_posts"
    PRODUCTS = "products"
    CATEGORIES = "categories"
    SETTINGS = "settings"
    MENU_ITEMS = "menu_items"
    ADMIN_USERS = "admin_users"
    TESTIMONIALS = "testimonials"
    FAQS = "faqs"
    IMAGES = "images"
    CONTACT_MESSAGES = "contact_messages"
    FUNDS = "funds"


class Column(BaseModel):
    name: str
    type: ColumnType = "string"


class Contract(BaseModel):
    sheet: Sheet
    columns: List[Column] = Field(default_factory=list)

    @property
    def headers(self) -> List[str]:
        return [column.name for column in self.columns]

    def column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None


def _cols(*defs: Union[str, Tuple[str, ColumnType]]) -> List[Column]:
    out = []
    for item in defs:
        if isinstance(item, tuple):
            out.append(Column(name=item[0], type=item[1]))
        else:
            out.append(Column(name=item))
    return out


_DEFINITIONS: Dict[Sheet, List[Column]] = {
    Sheet.WEBSITE_CONTENT: _cols(
        "id", "page", "section", "content", "image_url", ("order", "integer"),
    ),
    Sheet.BLOG_POSTS: _cols(
        "id", "title", "slug", "content", "excerpt", "category", "author",
        ("date", "date"), "image_url", "status", ("views", "integer"),
    ),
    Sheet.PRODUCTS: _cols(
        "id", "name", "slug", ("price", "decimal"), "description", "image_url",
        ("gallery_urls", "json"), "category", ("stock", "integer"), "sku", "status",
    ),
    Sheet.CATEGORIES: _cols(
        "id", "name", "slug", "type", "description", ("order", "integer"), "status",
    ),
    Sheet.SETTINGS: _cols("id", "setting_key", "setting_value", "setting_type"),
    Sheet.MENU_ITEMS: _cols(
        "id", "label", "url", "parent_id", ("order", "integer"), "target", "status",
    ),
    Sheet.ADMIN_USERS: _cols(
        "id", "username", "email", "password_hash", "role", "status",
        ("last_login", "timestamp"),
    ),
    Sheet.TESTIMONIALS: _cols(
        "id", "name", "designation", "review", ("rating", "integer"), "image_url",
        "status", ("order", "integer"),
    ),
    Sheet.FAQS: _cols(
        "id", "question", "answer", "category", ("order", "integer"), "status",
    ),
    Sheet.IMAGES: _cols(
        "id", "filename", "url", "cloudinary_id", ("size", "integer"),
        ("width", "integer"), ("height", "integer"), "format",
        ("upload_date", "timestamp"),
    ),
    Sheet.CONTACT_MESSAGES: _cols(
        "id", "name", "email", "phone", "subject", "message", "status",
    ),
    Sheet.FUNDS: _cols(
        "id", "name", "email", "phone", ("amount", "decimal"), "message", "status",
    ),
}


def _with_timestamps(sheet: Sheet, columns: List[Column]) -> Contract:
    names = {column.name for column in columns}
    full = list(columns)
    for name in TIMESTAMP_COLUMNS:
        if name not in names:
            full.append(Column(name=name, type="timestamp"))
    return Contract(sheet=sheet, columns=full)


REGISTRY: Dict[Sheet, Contract] = {
    sheet: _with_timestamps(sheet, columns) for sheet, columns in _DEFINITIONS.items()
}


def resolve(sheet: Union[Sheet, str]) -> Sheet:
    if isinstance(sheet, Sheet):
        return sheet
    try:
        return Sheet(sheet)
    except ValueError:
        raise UnknownSchemaError(sheet) from None


def contract(sheet: Union[Sheet, str]) -> Contract:
    return REGISTRY[resolve(sheet)]


def headers(sheet: Union[Sheet, str]) -> List[str]:
    return contract(sheet).headers


def column_letter(index: int) -> str:
    """1-based column index to its A1 letter (1 -> A, 27 -> AA)."""

    letters = ""
    while index > 0:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def last_column(sheet: Union[Sheet, str]) -> str:
    return column_letter(len(headers(sheet)))
