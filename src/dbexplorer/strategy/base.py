"""
Base strategy interface for paginated reads.

A pagination strategy formulates the data query for one page of a table.
SQL Server 2012 and later understand OFFSET/FETCH; older servers need a
windowed ROW_NUMBER() formulation. Every strategy returns the same rows in
the same order for the same PageRequest, so callers can switch between them
freely.
"""
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from dbexplorer.query import execute_statement
from dbexplorer.sql import PageRequest, Statement, quote_identifier, where_clause
from dbexplorer.structure import Record
from dbexplorer.types import ParamBinding

if TYPE_CHECKING:
    from dbexplorer.connection import ConnectionWrapper

# Registry of strategy name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['PaginationStrategy']] = {}


def register_strategy(name: str):
    """Decorator to register a pagination strategy class.

    Usage:
        @register_strategy('offset')
        class OffsetFetchStrategy(PaginationStrategy):
            ...
    """
    def decorator(cls: type['PaginationStrategy']) -> type['PaginationStrategy']:
        cls.name = name
        _STRATEGY_REGISTRY[name] = cls
        return cls
    return decorator


class PaginationStrategy(ABC):
    """Base class for page query formulations.
    """

    name: str = ''

    @abstractmethod
    def build_page_sql(self, table: str, request: PageRequest, condition_sql: str = '') -> str:
        """Return the data query for one page.

        Args:
            table: Table name, unquoted
            request: Validated page and order
            condition_sql: Filter condition without the WHERE keyword
        """

    def build(self, table: str, request: PageRequest, condition_sql: str = '',
              bindings: list[ParamBinding] | None = None) -> Statement:
        return Statement(self.build_page_sql(table, request, condition_sql), list(bindings or []))

    def postprocess(self, records: list[Record]) -> list[Record]:
        """Shape raw result records; identity by default."""
        return records

    def fetch(self, cn: 'ConnectionWrapper', table: str, request: PageRequest,
              condition_sql: str = '', bindings: list[ParamBinding] | None = None) -> list[Record]:
        """Execute the page query and return its records.
        """
        statement = self.build(table, request, condition_sql, bindings)
        return self.postprocess(execute_statement(cn, statement))

    def _from_clause(self, table: str, condition_sql: str) -> str:
        return f'FROM {quote_identifier(table)}{where_clause(condition_sql)}'
