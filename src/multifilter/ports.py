"""
Ports for external collaborators.

Natural-language interpretation and filter suggestions are provided by
services outside the engine. The engine only defines what it accepts from
them; the Null implementations are the defaults and do nothing.

A failing port raises to the caller. The session never writes a partial
result into the model.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from multifilter.model import MultiFilterModel, ParsedNaturalQuery


@dataclass(frozen=True)
class FilterSuggestion:
    """
    One suggested change offered to the user.

    Properties:
        kind: e.g. "add_condition", "simplify", "reorder"
        description: Human-readable text
        confidence: 0..1
        payload: Node fields for the change (shape depends on kind)
    """

    kind: str
    description: str
    confidence: float = 0.0
    payload: Dict[str, Any] = field(default_factory=dict)


class NaturalLanguageInterpreter(ABC):
    @abstractmethod
    def parse(self, text: str) -> ParsedNaturalQuery:
        """Interpret free text as filter conditions."""


class SuggestionEngine(ABC):
    @abstractmethod
    def suggest(self, model: MultiFilterModel) -> List[FilterSuggestion]:
        """Propose changes to a filter."""


class NullInterpreter(NaturalLanguageInterpreter):
    """Understands nothing: zero conditions, zero confidence."""

    def parse(self, text: str) -> ParsedNaturalQuery:
        return ParsedNaturalQuery(original_query=text, intent="filter", conditions=(), confidence=0.0)


class NullSuggestionEngine(SuggestionEngine):
    def suggest(self, model: MultiFilterModel) -> List[FilterSuggestion]:
        return []
