"""Вывод размера и цвета варианта из данных Stock API.

Порядок: структурированные опции варианта, затем разбор свободного имени
("แดง / M", "M / แดง", "M-แดง", "แดง, S").
"""
import re
from typing import NamedTuple, Optional

from anajak_erp.schemas.stock import StockVariant

FREE_SIZE = "FREE"
NO_COLOR = "-"

SIZE_OPTION_PATTERN = re.compile(r"ไซส์|size", re.IGNORECASE)
COLOR_OPTION_PATTERN = re.compile(r"สี|color", re.IGNORECASE)
NAME_SEPARATOR = re.compile(r"\s*[/\-,]\s*")
SIZE_TOKEN = re.compile(r"^(XS|S|M|L|XL|2XL|3XL|4XL|5XL|FREE|\d+)$", re.IGNORECASE)

class VariantAttributes(NamedTuple):
    size: str
    color: str

def is_size_token(value: str) -> bool:
    return bool(SIZE_TOKEN.match(value))

def resolve_variant_attributes(variant: StockVariant) -> VariantAttributes:
    options = variant.options or []
    size_option = next((o for o in options if SIZE_OPTION_PATTERN.search(o.type)), None)
    color_option = next((o for o in options if COLOR_OPTION_PATTERN.search(o.type)), None)

    # Достаточно одной из опций: вторая получает значение по умолчанию
    if size_option or color_option:
        size = size_option.value.upper() if size_option and size_option.value else FREE_SIZE
        color = color_option.value if color_option and color_option.value else NO_COLOR
        return VariantAttributes(size=size, color=color)

    return parse_variant_name(variant.name)

def parse_variant_name(name: Optional[str]) -> VariantAttributes:
    if not name:
        return VariantAttributes(size=FREE_SIZE, color=NO_COLOR)

    parts = [p.strip() for p in NAME_SEPARATOR.split(name)]
    parts = [p for p in parts if p]

    if not parts:
        return VariantAttributes(size=FREE_SIZE, color=NO_COLOR)

    if len(parts) == 1:
        if is_size_token(parts[0]):
            return VariantAttributes(size=parts[0].upper(), color=NO_COLOR)
        return VariantAttributes(size=FREE_SIZE, color=parts[0])

    if len(parts) == 2:
        first, second = parts
        if is_size_token(first):
            return VariantAttributes(size=first.upper(), color=second)
        if is_size_token(second):
            return VariantAttributes(size=second.upper(), color=first)
        # Неоднозначно: по соглашению первый сегмент - цвет, второй - размер
        return VariantAttributes(size=second, color=first)

    # 3+ сегментов: исходное имя сохраняется для ручной проверки
    return VariantAttributes(size=FREE_SIZE, color=name)
