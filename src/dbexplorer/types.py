"""
Parameter binding types for SQL Server columns.

This module maps the declared type of a column, as reported by
INFORMATION_SCHEMA, to the binding type a parameter is tagged with when it is
sent to the driver, and converts application values (usually text coming
from a form) into the scalar the driver expects:

1. `resolve_binding_type` - declared type name -> BindingType
2. `coerce_value` - application value -> ParamBinding
3. `sqlalchemy_type` - BindingType -> SQLAlchemy mssql type used for binding

Coercion never raises: values that cannot be converted bind as NULL with the
resolved type so the driver does not have to guess it.
"""
import base64
import binascii
import datetime
import decimal
import logging
import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any

import dateutil.parser
from sqlalchemy.dialects import mssql

logger = logging.getLogger(__name__)

LARGE_TEXT_THRESHOLD = 4000

SPECIAL_STRINGS: set[str] = {'null', 'nan', 'none'}


class BindingType(Enum):
    """Binding categories understood by the executor."""
    NVARCHAR = 'nvarchar'
    VARCHAR = 'varchar'
    NTEXT = 'ntext'
    TEXT = 'text'
    BIT = 'bit'
    INT = 'int'
    BIGINT = 'bigint'
    SMALLINT = 'smallint'
    TINYINT = 'tinyint'
    FLOAT = 'float'
    DECIMAL = 'decimal'
    DATE = 'date'
    DATETIME2 = 'datetime2'
    DATETIMEOFFSET = 'datetimeoffset'
    SMALLDATETIME = 'smalldatetime'
    TIME = 'time'
    UNIQUEIDENTIFIER = 'uniqueidentifier'
    XML = 'xml'
    VARBINARY = 'varbinary'
    IMAGE = 'image'

    @property
    def is_text(self) -> bool:
        return self in TEXT_TYPES

    @property
    def is_numeric(self) -> bool:
        return self in INTEGER_TYPES or self in (BindingType.FLOAT, BindingType.DECIMAL)

    @property
    def is_temporal(self) -> bool:
        return self in TEMPORAL_TYPES

    @property
    def is_binary(self) -> bool:
        return self in (BindingType.VARBINARY, BindingType.IMAGE)


TEXT_TYPES = frozenset({BindingType.NVARCHAR, BindingType.VARCHAR,
                        BindingType.NTEXT, BindingType.TEXT})
INTEGER_TYPES = frozenset({BindingType.INT, BindingType.BIGINT,
                           BindingType.SMALLINT, BindingType.TINYINT})
TEMPORAL_TYPES = frozenset({BindingType.DATE, BindingType.DATETIME2,
                            BindingType.DATETIMEOFFSET, BindingType.SMALLDATETIME,
                            BindingType.TIME})

LARGE_TEXT = {
    BindingType.NVARCHAR: BindingType.NTEXT,
    BindingType.VARCHAR: BindingType.TEXT,
    }

_EXACT_INTEGER = {
    'bigint': BindingType.BIGINT,
    'smallint': BindingType.SMALLINT,
    'tinyint': BindingType.TINYINT,
    }

_EXACT_DATE = {
    'date': BindingType.DATE,
    'datetime': BindingType.DATETIME2,
    'datetime2': BindingType.DATETIME2,
    'datetimeoffset': BindingType.DATETIMEOFFSET,
    'smalldatetime': BindingType.SMALLDATETIME,
    }

_SQLALCHEMY_TYPES = {
    BindingType.NVARCHAR: mssql.NVARCHAR,
    BindingType.VARCHAR: mssql.VARCHAR,
    BindingType.NTEXT: mssql.NTEXT,
    BindingType.TEXT: mssql.TEXT,
    BindingType.BIT: mssql.BIT,
    BindingType.INT: mssql.INTEGER,
    BindingType.BIGINT: mssql.BIGINT,
    BindingType.SMALLINT: mssql.SMALLINT,
    BindingType.TINYINT: mssql.TINYINT,
    BindingType.FLOAT: mssql.FLOAT,
    BindingType.DECIMAL: mssql.DECIMAL,
    BindingType.DATE: mssql.DATE,
    BindingType.DATETIME2: mssql.DATETIME2,
    BindingType.DATETIMEOFFSET: mssql.DATETIMEOFFSET,
    BindingType.SMALLDATETIME: mssql.SMALLDATETIME,
    BindingType.TIME: mssql.TIME,
    BindingType.UNIQUEIDENTIFIER: mssql.UNIQUEIDENTIFIER,
    BindingType.XML: mssql.XML,
    BindingType.VARBINARY: mssql.VARBINARY,
    BindingType.IMAGE: mssql.IMAGE,
    }


@dataclass(slots=True, frozen=True)
class ParamBinding:
    """A parameter value tagged with the binding type it is sent as."""
    value: Any
    binding_type: BindingType
    type_name: str = ''

    @property
    def is_null(self) -> bool:
        return self.value is None


def resolve_binding_type(type_name: str | None,
                         max_length: int | None = None) -> BindingType:
    """Map a declared SQL Server type name to a binding type.

    Exact names are matched before substring rules, so ``bigint`` is never
    taken for a plain ``int``. A ``max_length`` of -1 (``varchar(max)``)
    selects the large text variants.

    >>> resolve_binding_type('bigint')
    <BindingType.BIGINT: 'bigint'>
    >>> resolve_binding_type('NVARCHAR')
    <BindingType.NVARCHAR: 'nvarchar'>
    >>> resolve_binding_type('varchar', max_length=-1)
    <BindingType.TEXT: 'text'>
    """
    name = (type_name or '').strip().lower()

    if 'char' in name or 'text' in name:
        unicode = name.startswith('n')
        large = 'max' in name or name in {'text', 'ntext'} or max_length == -1
        if unicode:
            return BindingType.NTEXT if large else BindingType.NVARCHAR
        return BindingType.TEXT if large else BindingType.VARCHAR

    if name == 'bit':
        return BindingType.BIT

    if 'int' in name:
        return _EXACT_INTEGER.get(name, BindingType.INT)

    if name in {'float', 'real'}:
        return BindingType.FLOAT

    if name in {'decimal', 'numeric', 'money', 'smallmoney'}:
        return BindingType.DECIMAL

    if 'date' in name:
        return _EXACT_DATE.get(name, BindingType.DATETIME2)

    if 'time' in name:
        return BindingType.TIME

    if name == 'uniqueidentifier':
        return BindingType.UNIQUEIDENTIFIER

    if name == 'xml':
        return BindingType.XML

    if name == 'image':
        return BindingType.IMAGE

    if name in {'binary', 'varbinary'}:
        return BindingType.VARBINARY

    logger.warning(f'Unrecognized SQL type: {type_name!r}, defaulting to nvarchar')
    return BindingType.NVARCHAR


def sqlalchemy_type(binding_type: BindingType) -> Any:
    """Return the SQLAlchemy mssql type instance used to bind a parameter.
    """
    type_cls = _SQLALCHEMY_TYPES[binding_type]
    if binding_type is BindingType.UNIQUEIDENTIFIER:
        return type_cls(as_uuid=False)
    return type_cls()


def _is_blank(value: str) -> bool:
    """Check if a form string stands for NULL in a non-text column."""
    stripped = value.strip()
    return stripped == '' or stripped.lower() in SPECIAL_STRINGS


def _to_integer(value: Any) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    number = _to_decimal(value)
    if number is None:
        return None
    if number != number.to_integral_value():
        logger.debug(f'Dropping non-integral value {value!r} for integer column')
        return None
    return int(number)


def _to_float(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _to_decimal(value: Any) -> decimal.Decimal | None:
    if isinstance(value, float):
        value = repr(value)
    try:
        number = decimal.Decimal(str(value).strip())
    except (decimal.InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _coerce_number(value: Any, binding_type: BindingType) -> Any:
    if isinstance(value, str) and _is_blank(value):
        return None
    if binding_type in INTEGER_TYPES:
        return _to_integer(value)
    if binding_type is BindingType.FLOAT:
        return _to_float(value)
    return _to_decimal(value)


def _coerce_bit(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == 'true':
            return True
        if lowered == 'false':
            return False
    return bool(value)


def _coerce_binary(value: Any, type_name: str) -> bytes | None:
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value)
    if isinstance(value, str) and value.startswith('data:') and ';base64,' in value:
        payload = value.split(';base64,', 1)[1]
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as err:
            logger.warning(f'Dropping invalid base64 payload for {type_name} column: {err}')
            return None
    logger.warning(f'Dropping unsupported {type(value).__name__} value for {type_name} column')
    return None


def _coerce_temporal(value: Any, binding_type: BindingType) -> Any:
    if isinstance(value, str):
        if _is_blank(value):
            return None
        try:
            value = dateutil.parser.isoparse(value)
        except ValueError:
            try:
                value = dateutil.parser.parse(value)
            except (ValueError, OverflowError) as err:
                logger.warning(f'Dropping unparsable {binding_type.value} value {value!r}: {err}')
                return None

    if binding_type is BindingType.TIME:
        if isinstance(value, datetime.datetime):
            return value.time()
        return value if isinstance(value, datetime.time) else None

    if binding_type is BindingType.DATE:
        if isinstance(value, datetime.datetime):
            return value.date()
        return value if isinstance(value, datetime.date) else None

    if isinstance(value, datetime.datetime):
        if binding_type is not BindingType.DATETIMEOFFSET and value.tzinfo is not None:
            return value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    return None


def coerce_value(value: Any, binding_type: BindingType, type_name: str = '',
                 large_text_threshold: int = LARGE_TEXT_THRESHOLD) -> ParamBinding:
    """Convert an application value into a typed parameter binding.

    >>> coerce_value('true', BindingType.BIT, 'bit').value
    True
    >>> coerce_value('not-a-number', BindingType.INT, 'int').value is None
    True
    >>> coerce_value('42', BindingType.BIGINT, 'bigint').value
    42
    """
    type_name = type_name or binding_type.value

    if value is None:
        return ParamBinding(None, binding_type, type_name)

    if binding_type.is_binary:
        return ParamBinding(_coerce_binary(value, type_name), binding_type, type_name)

    if binding_type.is_numeric:
        return ParamBinding(_coerce_number(value, binding_type), binding_type, type_name)

    if binding_type is BindingType.BIT:
        return ParamBinding(_coerce_bit(value), binding_type, type_name)

    if binding_type.is_temporal:
        return ParamBinding(_coerce_temporal(value, binding_type), binding_type, type_name)

    if binding_type is BindingType.UNIQUEIDENTIFIER and isinstance(value, uuid.UUID):
        return ParamBinding(str(value), binding_type, type_name)

    if not isinstance(value, str):
        value = str(value)

    if binding_type.is_text and len(value) > large_text_threshold:
        binding_type = LARGE_TEXT.get(binding_type, binding_type)

    return ParamBinding(value, binding_type, type_name)


def bind_value(value: Any, type_name: str | None, max_length: int | None = None,
               large_text_threshold: int = LARGE_TEXT_THRESHOLD) -> ParamBinding:
    """Resolve the binding type for a declared type name and coerce the value.
    """
    binding_type = resolve_binding_type(type_name, max_length)
    return coerce_value(value, binding_type, (type_name or '').lower(),
                        large_text_threshold)


def infer_binding(value: Any, large_text_threshold: int = LARGE_TEXT_THRESHOLD) -> ParamBinding:
    """Bind a value by its Python type when no column type is known.
    """
    if value is None:
        return ParamBinding(None, BindingType.NVARCHAR)
    if isinstance(value, bool):
        return ParamBinding(value, BindingType.BIT)
    if isinstance(value, int):
        return ParamBinding(value, BindingType.BIGINT)
    if isinstance(value, float):
        return coerce_value(value, BindingType.FLOAT)
    if isinstance(value, decimal.Decimal):
        return coerce_value(value, BindingType.DECIMAL)
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            return ParamBinding(value, BindingType.DATETIMEOFFSET)
        return ParamBinding(value, BindingType.DATETIME2)
    if isinstance(value, datetime.date):
        return ParamBinding(value, BindingType.DATE)
    if isinstance(value, datetime.time):
        return ParamBinding(value, BindingType.TIME)
    if isinstance(value, bytes | bytearray | memoryview):
        return ParamBinding(bytes(value), BindingType.VARBINARY)
    return coerce_value(value, BindingType.NVARCHAR,
                        large_text_threshold=large_text_threshold)
