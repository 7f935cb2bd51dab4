"""
Windowed ROW_NUMBER() pagination for servers without OFFSET/FETCH.

Each row gets a sequential number under the requested order; the page is the
numeric range ``first_row .. last_row``. The helper column is removed from
the records so they match what OFFSET/FETCH returns.
"""
from dbexplorer.sql import PageRequest
from dbexplorer.strategy.base import PaginationStrategy, register_strategy
from dbexplorer.structure import Record

ROW_NUMBER_COLUMN = '__RowNum'


@register_strategy('rownumber')
class RowNumberStrategy(PaginationStrategy):
    """Number the ordered rows in a CTE and filter the page range"""

    def build_page_sql(self, table: str, request: PageRequest, condition_sql: str = '') -> str:
        return (
            f'WITH NumberedRows AS ('
            f'SELECT ROW_NUMBER() OVER ({request.order_clause()}) AS [{ROW_NUMBER_COLUMN}], * '
            f'{self._from_clause(table, condition_sql)}) '
            f'SELECT * FROM NumberedRows '
            f'WHERE [{ROW_NUMBER_COLUMN}] BETWEEN {request.first_row} AND {request.last_row} '
            f'ORDER BY [{ROW_NUMBER_COLUMN}]'
            )

    def postprocess(self, records: list[Record]) -> list[Record]:
        for record in records:
            record.pop(ROW_NUMBER_COLUMN, None)
        return records
