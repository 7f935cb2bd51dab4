"""
Pagination strategy factory and the modern-then-legacy page selector.
"""
import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from dbexplorer.exceptions import DatabaseError, QueryError
from dbexplorer.sql import PageRequest
from dbexplorer.strategy.base import _STRATEGY_REGISTRY
from dbexplorer.strategy.base import PaginationStrategy as PaginationStrategy
from dbexplorer.strategy.base import register_strategy as register_strategy
from dbexplorer.strategy.offset import OffsetFetchStrategy as OffsetFetchStrategy
from dbexplorer.strategy.rownumber import RowNumberStrategy as RowNumberStrategy
from dbexplorer.structure import Record
from dbexplorer.types import ParamBinding

if TYPE_CHECKING:
    from dbexplorer.connection import ConnectionWrapper

logger = logging.getLogger(__name__)

MODERN = 'offset'
LEGACY = 'rownumber'


def _validate_strategy(name: str) -> None:
    """Raise ValueError if the strategy name is not registered."""
    if name not in _STRATEGY_REGISTRY:
        available = list(_STRATEGY_REGISTRY.keys())
        raise ValueError(f'Unsupported pagination strategy: {name}. Available: {available}')


@lru_cache(maxsize=8)
def get_strategy(name: str) -> PaginationStrategy:
    """Get the (stateless, shared) strategy instance for a name."""
    _validate_strategy(name)
    return _STRATEGY_REGISTRY[name]()


def get_available_strategies() -> list[str]:
    """Return list of registered strategy names."""
    return list(_STRATEGY_REGISTRY.keys())


def fetch_page(cn: 'ConnectionWrapper', table: str, request: PageRequest,
               condition_sql: str = '', bindings: list[ParamBinding] | None = None) -> list[Record]:
    """Fetch one page, falling back once from OFFSET/FETCH to ROW_NUMBER.

    The first failure is logged and not surfaced. If the legacy query fails
    as well, a QueryError carrying its message is raised from it.
    """
    try:
        return get_strategy(MODERN).fetch(cn, table, request, condition_sql, bindings)
    except DatabaseError as modern_error:
        logger.warning(f'Modern pagination failed, trying legacy pagination: {modern_error}')

    try:
        return get_strategy(LEGACY).fetch(cn, table, request, condition_sql, bindings)
    except DatabaseError as legacy_error:
        statement = getattr(legacy_error, 'statement', None)
        raise QueryError(str(legacy_error), statement) from legacy_error
