"""Query backends: SQL-like, document-query and natural-language output."""

from .base import GeneratedQuery, QueryGenerator
from .document import DocumentQueryGenerator, generate_document_query
from .natural import NaturalLanguageGenerator, generate_natural_language
from .sql import SqlGenerator, generate_sql, sql_preview

__all__ = [
    "GeneratedQuery",
    "QueryGenerator",
    "SqlGenerator",
    "DocumentQueryGenerator",
    "NaturalLanguageGenerator",
    "generate_sql",
    "sql_preview",
    "generate_document_query",
    "generate_natural_language",
]
