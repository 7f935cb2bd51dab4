"""
OFFSET/FETCH pagination (SQL Server 2012+).
"""
from dbexplorer.sql import PageRequest
from dbexplorer.strategy.base import PaginationStrategy, register_strategy


@register_strategy('offset')
class OffsetFetchStrategy(PaginationStrategy):
    """Skip ``offset`` rows of the ordered set and fetch one page"""

    def build_page_sql(self, table: str, request: PageRequest, condition_sql: str = '') -> str:
        return (
            f'SELECT * {self._from_clause(table, condition_sql)} '
            f'{request.order_clause()} '
            f'OFFSET {request.offset} ROWS FETCH NEXT {request.page_size} ROWS ONLY'
            )
