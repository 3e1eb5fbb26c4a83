"""
Naming convention utilities for Model Auto Generator.

This module converts raw table and column identifiers into model names, file
names, attribute names and association aliases. Every transform is a pure
function of its input and the active ``NamingOptions``.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

import inflect

from model_auto_generator.constants import DefaultConfig, PYTHON_KEYWORDS


logger = logging.getLogger(__name__)

# Initialize inflect engine for pluralization
p = inflect.engine()


@dataclass(frozen=True)
class NamingOptions:
    """
    Naming switches, all off by default so identifiers pass through unchanged
    apart from the model suffix.
    """

    camel_case: bool = False
    attribute_camel_case: bool = False
    file_name_camel_case: bool = False
    file_name_matches_model: bool = False
    no_model_suffix: bool = False
    model_suffix: Optional[str] = None
    singularize: bool = False

    @property
    def effective_model_suffix(self) -> str:
        if self.no_model_suffix:
            return ""
        if self.model_suffix is not None:
            return self.model_suffix
        if self.camel_case:
            return DefaultConfig.CAMEL_CASE_MODEL_SUFFIX
        return DefaultConfig.SNAKE_CASE_MODEL_SUFFIX


def to_snake_case(name: str) -> str:
    """
    Convert CamelCase or PascalCase to snake_case.

    Example:
        >>> to_snake_case("UserAccount")
        'user_account'
        >>> to_snake_case("XMLHttpRequest")
        'xml_http_request'
    """
    if not isinstance(name, str):
        raise TypeError(f"Expected string, got {type(name).__name__}")

    name = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    name = re.sub("__([A-Z])", r"_\1", name)
    name = re.sub("([a-z0-9])([A-Z])", r"\1_\2", name)
    return name.lower()


def _words(name: str):
    return [word for word in re.split(r"[^0-9a-zA-Z]+", to_snake_case(name)) if word]


def to_camel_case(name: str) -> str:
    """
    Convert an identifier to lower camelCase.

    Example:
        >>> to_camel_case("user_profile")
        'userProfile'
        >>> to_camel_case("UserProfile")
        'userProfile'
    """
    words = _words(name)
    if not words:
        return name
    return words[0] + "".join(word.capitalize() for word in words[1:])


def to_pascal_case(name: str) -> str:
    """
    Convert an identifier to PascalCase (ClassName).

    Example:
        >>> to_pascal_case("user_profile")
        'UserProfile'
    """
    camel = to_camel_case(name)
    return camel[:1].upper() + camel[1:]


def singularize_name(name: str) -> str:
    """
    Singularize the last word of a table name.

    Example:
        >>> singularize_name("user_accounts")
        'user_account'
        >>> singularize_name("user")
        'user'
    """
    head, sep, last = name.rpartition("_")
    singular = p.singular_noun(last) if last else False
    # inflect returns False when the word is already singular
    if not singular:
        return name
    return f"{head}{sep}{singular}"


def pluralize(word: str) -> str:
    """
    Pluralize a word, falling back to appending 's'.

    Table names are often plural already; those are returned unchanged.

    Example:
        >>> pluralize("category")
        'categories'
        >>> pluralize("users")
        'users'
    """
    if not isinstance(word, str) or not word:
        return ""
    if p.singular_noun(word):
        return word
    plural = p.plural(word)
    return plural if plural else word + "s"


def strip_id_suffix(column_name: str) -> str:
    """
    Generate a relationship name from a foreign-key column name.

    Example:
        >>> strip_id_suffix("author_id")
        'author'
        >>> strip_id_suffix("managerId")
        'manager'
    """
    for suffix in ("_id", "Id", "_ID"):
        if column_name.endswith(suffix) and len(column_name) > len(suffix):
            return column_name[:-len(suffix)]
    return column_name


def python_identifier(name: str) -> str:
    """
    Make a name usable as a Python identifier.

    Invalid characters are removed, a leading digit gets an underscore prefix
    and keywords get an underscore suffix.

    Example:
        >>> python_identifier("class")
        'class_'
        >>> python_identifier("2fa-code")
        '_2facode'
    """
    cleaned = re.sub(r"[^a-zA-Z0-9_]", "", name or "")
    if cleaned and not (cleaned[0].isalpha() or cleaned[0] == "_"):
        cleaned = "_" + cleaned
    if cleaned in PYTHON_KEYWORDS:
        cleaned += "_"
    return cleaned if cleaned else "_field"


class NameTransformer:
    """
    Applies ``NamingOptions`` to table and column identifiers.

    Two tables may end up with the same model or file name; the transformer
    does not try to prevent that, the definition builder detects and flags it.
    """

    def __init__(self, options: Optional[NamingOptions] = None):
        self.options = options or NamingOptions()

    def to_model_name(self, table_name: str) -> str:
        """Convert a table name to a model name (cased base + suffix)."""
        base = table_name
        if self.options.singularize:
            base = singularize_name(base)
        if self.options.camel_case:
            base = to_pascal_case(base)
        return f"{base}{self.options.effective_model_suffix}"

    def to_file_name(self, model_name: str, table_name: str) -> str:
        """Convert a table name to a file name (without extension)."""
        if self.options.file_name_matches_model:
            return model_name
        if self.options.file_name_camel_case:
            return to_camel_case(table_name)
        return table_name

    def to_attr_name(self, column_name: str) -> str:
        """Convert a column name to an attribute name."""
        if self.options.attribute_camel_case:
            return to_camel_case(column_name)
        return column_name

    def belongs_to_alias(self, column_name: str) -> str:
        return self.to_attr_name(strip_id_suffix(column_name))

    def has_many_alias(self, source_table: str) -> str:
        return self.to_attr_name(pluralize(source_table))

    def belongs_to_many_alias(self, target_table: str) -> str:
        return self.to_attr_name(pluralize(target_table))
