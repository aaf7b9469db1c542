"""
CLEAN-phase processors: whitespace, pattern and literal replacement, de-duplication.
"""

import re
from typing import Any

from asset_etl.core.models import PipelineRow
from asset_etl.core.rules.configs import (
    ExactReplaceConfig,
    RegexReplaceConfig,
    RemoveDuplicatesConfig,
    RuleConfig,
    TrimConfig,
)

from .base import ProcessorScope, RuleProcessingError, TextProcessor
from .validate import compile_pattern

# $$, $& and $1..$99 in JavaScript-style replacement strings
_JS_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|\d{1,2})")


def expand_replacement(template: str, match: re.Match) -> str:
    """
    Expand a JavaScript-style replacement template for one match.

    Unknown group references are kept literally, as JavaScript does.
    """
    def substitute(token: re.Match) -> str:
        ref = token.group(1)
        if ref == "$":
            return "$"
        if ref == "&":
            return match.group(0)
        index = int(ref)
        if 0 < index <= match.re.groups:
            return match.group(index) or ""
        return token.group(0)

    return _JS_REPLACEMENT_TOKEN.sub(substitute, template)


class TrimProcessor(TextProcessor):
    """Strips configured characters from one or both sides of a value."""

    rule_type = "TRIM"

    def process_text(self, value: str, config: TrimConfig) -> str:
        if config.sides == "left":
            return value.lstrip(config.custom_chars)
        if config.sides == "right":
            return value.rstrip(config.custom_chars)
        return value.strip(config.custom_chars)


class RegexReplaceProcessor(TextProcessor):
    """
    Replaces pattern matches; the "g" flag replaces every match, otherwise only the first.
    """

    rule_type = "REGEX_REPLACE"

    def process_text(self, value: str, config: RegexReplaceConfig) -> str:
        try:
            pattern = compile_pattern(config.pattern, config.flags)
        except re.error as e:
            raise RuleProcessingError(f"Invalid regex pattern: {e}")

        count = 0 if "g" in config.flags else 1
        return pattern.sub(lambda match: expand_replacement(config.replacement, match), value, count=count)


class ExactReplaceProcessor(TextProcessor):
    """
    Replaces literal substrings.

    Replacements are tried longest "from" first; the first one found in the
    value replaces every occurrence of itself and evaluation stops.
    """

    rule_type = "EXACT_REPLACE"

    def process_text(self, value: str, config: ExactReplaceConfig) -> str:
        replacements = sorted(config.replacements, key=lambda item: len(item.from_), reverse=True)

        for replacement in replacements:
            if config.whole_value:
                if self._equals(value, replacement.from_, config.case_sensitive):
                    return replacement.to
                continue

            if config.case_sensitive:
                if replacement.from_ in value:
                    return value.replace(replacement.from_, replacement.to)
            else:
                pattern = re.compile(re.escape(replacement.from_), re.IGNORECASE)
                if pattern.search(value):
                    return pattern.sub(lambda _: replacement.to, value)

        return value

    @staticmethod
    def _equals(value: str, candidate: str, case_sensitive: bool) -> bool:
        if case_sensitive:
            return value == candidate
        return value.casefold() == candidate.casefold()


class RemoveDuplicatesProcessor(TextProcessor):
    """
    Removes duplicates, per value or across rows.

    With scope "value" (default) a delimited value is split, each token is
    trimmed, repeated tokens are dropped keeping the first spelling, and the
    tokens are rejoined with the delimiter. With scope "rows" later rows whose
    target-field values repeat an earlier row are dropped.
    """

    rule_type = "REMOVE_DUPLICATES"

    def scope_for(self, config: RuleConfig) -> ProcessorScope:
        return "rowset" if config.scope == "rows" else "field"

    def process_text(self, value: str, config: RemoveDuplicatesConfig) -> str:
        tokens = [token.strip() for token in value.split(config.delimiter)]
        seen: set[str] = set()
        unique: list[str] = []
        for token in tokens:
            key = token if config.case_sensitive else token.lower()
            if key not in seen:
                seen.add(key)
                unique.append(token)
        return config.delimiter.join(unique)

    def process_rows(
        self,
        rows: list[PipelineRow],
        fields: list[str],
        config: RemoveDuplicatesConfig,
    ) -> tuple[list[PipelineRow], list[int]]:
        """
        Drop rows repeating the key formed by the given fields.

        Args:
            rows: Rows in file order
            fields: Key fields
            config: Typed rule config

        Returns:
            Tuple of (kept rows, row numbers of dropped rows)
        """
        seen: set[tuple[Any, ...]] = set()
        kept: list[PipelineRow] = []
        dropped: list[int] = []

        for row in rows:
            key = tuple(self._key_part(row.get(field), config) for field in fields)
            if all(part is None for part in key):
                kept.append(row)
                continue
            if key in seen:
                dropped.append(row.row_number)
                continue
            seen.add(key)
            kept.append(row)

        return kept, dropped

    @staticmethod
    def _key_part(value: Any, config: RemoveDuplicatesConfig) -> Any:
        if value is None:
            return None
        text = str(value).strip()
        if not text:
            return None
        return text if config.case_sensitive else text.lower()
