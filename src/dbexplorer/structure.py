"""
Table metadata structures discovered at request time.

These structures hold ONLY what the catalog views report about a table. They
are rebuilt on every introspection call and never cached.
"""
from dataclasses import dataclass, field
from typing import Any

from dbexplorer.exceptions import SchemaError, ValidationError

from libb import attrdict

Record = attrdict


@dataclass(slots=True)
class ColumnMetadata:
    """Column as reported by INFORMATION_SCHEMA.COLUMNS"""
    name: str
    data_type: str
    is_nullable: bool = True
    max_length: int | None = None
    precision: int | None = None
    scale: int | None = None
    is_identity: bool = False

    def __post_init__(self):
        self.data_type = (self.data_type or '').lower()
        self.is_nullable = bool(self.is_nullable)
        self.is_identity = bool(self.is_identity)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> 'ColumnMetadata':
        return cls(
            name=row['name'],
            data_type=row['data_type'],
            is_nullable=row['is_nullable'],
            max_length=row.get('max_length'),
            precision=row.get('precision'),
            scale=row.get('scale'),
            is_identity=row.get('is_identity') or False,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'dataType': self.data_type,
            'isNullable': self.is_nullable,
            'maxLength': self.max_length,
            'precision': self.precision,
            'scale': self.scale,
            'isIdentity': self.is_identity,
            }


@dataclass(slots=True)
class ForeignKeyMetadata:
    """Directed edge: table.column_name -> referenced_table.referenced_column"""
    name: str
    column_name: str
    referenced_table: str
    referenced_column: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> 'ForeignKeyMetadata':
        return cls(
            name=row['name'],
            column_name=row['column_name'],
            referenced_table=row['referenced_table'],
            referenced_column=row['referenced_column'],
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'columnName': self.column_name,
            'referencedTable': self.referenced_table,
            'referencedColumn': self.referenced_column,
            }


@dataclass(slots=True)
class TableMetadata:
    """Columns (in ordinal order), primary keys and foreign keys of a table.

    An unknown table is represented by an instance with no columns; callers
    check `is_empty` rather than catching an error.
    """
    name: str
    columns: list[ColumnMetadata] = field(default_factory=list)
    primary_keys: list[str] = field(default_factory=list)
    foreign_keys: list[ForeignKeyMetadata] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.columns

    @property
    def column_names(self) -> list[str]:
        return [col.name for col in self.columns]

    @property
    def identity_columns(self) -> list[str]:
        return [col.name for col in self.columns if col.is_identity]

    def column(self, name: str) -> ColumnMetadata | None:
        """Find a column by name, exact match first, then case-insensitive.
        """
        for col in self.columns:
            if col.name == name:
                return col
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    def require_column(self, name: str) -> ColumnMetadata:
        """Return the named column or raise ValidationError.
        """
        col = self.column(name) if name else None
        if col is None:
            raise ValidationError(f'Unknown column {name!r} for table {self.name!r}')
        return col

    def validate(self) -> None:
        """Check that every key column is one of the table's columns.
        """
        names = set(self.column_names)
        missing_pk = [pk for pk in self.primary_keys if pk not in names]
        if missing_pk:
            raise SchemaError(f'Primary key columns {missing_pk} not found in {self.name!r}')
        missing_fk = [fk.column_name for fk in self.foreign_keys if fk.column_name not in names]
        if missing_fk:
            raise SchemaError(f'Foreign key columns {missing_fk} not found in {self.name!r}')

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.name,
            'columns': [col.to_dict() for col in self.columns],
            'primaryKeys': list(self.primary_keys),
            'foreignKeys': [fk.to_dict() for fk in self.foreign_keys],
            }


@dataclass(slots=True)
class TableData:
    """Page of records plus the unpaginated row count.

    `error` is set when the read failed; `data` is then empty and `total` 0.
    """
    data: list[Record] = field(default_factory=list)
    total: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        result = {'data': [dict(row) for row in self.data], 'total': self.total}
        if self.error is not None:
            result['error'] = self.error
        return result
