"""
Alias resolver: maps raw spreadsheet headers to canonical asset fields.

Resolution is a pure lookup over a snapshot of the column-alias table. The
default strategy is an exact, case-sensitive match. Approximate matching is
only available as an explicitly selected strategy behind the same contract.
"""

import re
from abc import ABC, abstractmethod

from asset_etl.core.models import AliasMatch, ColumnAlias, FieldMappingReport


class AliasMatchStrategy(ABC):
    """Looks up a header in an alias table."""

    name: str = "base"

    def __init__(self, aliases: list[ColumnAlias]):
        self.aliases = list(aliases)

    @abstractmethod
    def find(self, csv_header: str) -> ColumnAlias | None:
        pass


class ExactAliasStrategy(AliasMatchStrategy):
    """Exact, case-sensitive match on csv_alias."""

    name = "exact"

    def __init__(self, aliases: list[ColumnAlias]):
        super().__init__(aliases)
        self._index = {alias.csv_alias: alias for alias in self.aliases}

    def find(self, csv_header: str) -> ColumnAlias | None:
        return self._index.get(csv_header)


class NormalizedAliasStrategy(AliasMatchStrategy):
    """
    Exact match first, then a case- and whitespace-insensitive match.

    Confidence is always the stored value; no score is computed.
    """

    name = "normalized"

    _WHITESPACE = re.compile(r"\s+")

    def __init__(self, aliases: list[ColumnAlias]):
        super().__init__(aliases)
        self._exact = {alias.csv_alias: alias for alias in self.aliases}
        self._normalized: dict[str, ColumnAlias] = {}
        for alias in self.aliases:
            self._normalized.setdefault(self.normalize(alias.csv_alias), alias)

    @classmethod
    def normalize(cls, header: str) -> str:
        return cls._WHITESPACE.sub(" ", header).strip().casefold()

    def find(self, csv_header: str) -> ColumnAlias | None:
        exact = self._exact.get(csv_header)
        if exact is not None:
            return exact
        return self._normalized.get(self.normalize(csv_header))


MATCH_STRATEGIES: dict[str, type[AliasMatchStrategy]] = {
    ExactAliasStrategy.name: ExactAliasStrategy,
    NormalizedAliasStrategy.name: NormalizedAliasStrategy,
}


class AliasResolver:
    """
    Resolves headers against a column-alias snapshot.

    Absence of a match is a normal outcome: unmapped headers are reported so a
    person or a FIELD_MAPPING rule can supply an explicit mapping.
    """

    def __init__(self, aliases: list[ColumnAlias], strategy: str | AliasMatchStrategy = "exact"):
        """
        Args:
            aliases: Column alias snapshot
            strategy: Strategy name ("exact", "normalized") or instance

        Raises:
            ValueError: If the strategy name is unknown
        """
        if isinstance(strategy, AliasMatchStrategy):
            self.strategy = strategy
        else:
            strategy_class = MATCH_STRATEGIES.get(strategy)
            if strategy_class is None:
                raise ValueError(
                    f"Unknown alias match strategy '{strategy}'. Available: {', '.join(MATCH_STRATEGIES)}"
                )
            self.strategy = strategy_class(aliases)

    def resolve(self, csv_header: str) -> AliasMatch | None:
        """
        Resolve one header.

        Args:
            csv_header: Header text as extracted

        Returns:
            AliasMatch with the stored confidence, or None when unmapped
        """
        alias = self.strategy.find(csv_header)
        if alias is None:
            return None
        return AliasMatch(csv_header=csv_header, asset_field=alias.asset_field, confidence=alias.confidence)

    def resolve_headers(self, headers: list[str]) -> FieldMappingReport:
        """
        Resolve a full header set, preserving header order.

        Args:
            headers: Headers of the extracted file

        Returns:
            FieldMappingReport where mapped + unmapped always equals the header count
        """
        mapped: list[AliasMatch] = []
        unmapped: list[str] = []
        for header in headers:
            match = self.resolve(header)
            if match is None:
                unmapped.append(header)
            else:
                mapped.append(match)

        return FieldMappingReport(
            mapped_fields=mapped,
            unmapped_fields=unmapped,
            total_csv_columns=len(headers),
        )
