"""Column-layout descriptors for the reference tables.

A ``TableSchema`` names every column of a table by role, left to right, as it
appears on a row where every column is physically present (the first row of
an entity). It splits the columns into three groups:

- entity columns  — present only on the row that opens a new record;
- group columns   — present only on the row that opens a description group
                    (actions table only);
- leaf columns    — present on every row.

Merged cells remove physical cells from the *left* of continuation rows, so
columns are addressed by their distance from the row's right edge. Those
distances are computed once here from the declared width.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from bs4 import Tag

type ColumnRole = Literal[
    "name",
    "description",
    "access_level",
    "resource_type",
    "condition_keys",
    "dependent_actions",
    "arn_pattern",
    "type",
]


@dataclass(frozen=True, slots=True)
class TableSchema:
    """Role-per-column layout of one table variant.

    Invariants (enforced in __post_init__):
        - roles are unique and there is at least one column
        - entity_columns is a non-empty prefix of columns
        - group_columns, if any, directly follow the entity columns
    """

    name: str
    columns: tuple[ColumnRole, ...]
    entity_columns: tuple[ColumnRole, ...] = ("name",)
    group_columns: tuple[ColumnRole, ...] = ()
    merges: bool = True
    _from_right: dict[ColumnRole, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.columns:
            raise ValueError(f"schema {self.name!r} has no columns")
        if len(set(self.columns)) != len(self.columns):
            raise ValueError(f"schema {self.name!r} has duplicate column roles")
        n_entity = len(self.entity_columns)
        if n_entity == 0 or self.columns[:n_entity] != self.entity_columns:
            raise ValueError(
                f"schema {self.name!r}: entity columns {self.entity_columns} "
                f"must be a prefix of {self.columns}"
            )
        n_group = len(self.group_columns)
        if self.columns[n_entity:n_entity + n_group] != self.group_columns:
            raise ValueError(
                f"schema {self.name!r}: group columns {self.group_columns} "
                f"must follow the entity columns"
            )
        width = len(self.columns)
        object.__setattr__(
            self,
            "_from_right",
            {role: width - i for i, role in enumerate(self.columns)},
        )

    @property
    def width(self) -> int:
        """Cell count of a row that opens a new entity."""
        return len(self.columns)

    @property
    def leaf_columns(self) -> tuple[ColumnRole, ...]:
        return self.columns[len(self.entity_columns) + len(self.group_columns):]

    @property
    def group_role(self) -> ColumnRole | None:
        """Column whose rowspan delimits a description group."""
        return self.group_columns[0] if self.group_columns else None

    @property
    def group_width(self) -> int:
        """Minimum cell count of a row that opens a description group."""
        if not self.group_columns:
            return 0
        return self._from_right[self.group_columns[0]]

    @property
    def leaf_width(self) -> int:
        """Minimum cell count of any data row."""
        if not self.leaf_columns:
            return 0
        return self._from_right[self.leaf_columns[0]]

    def offset(self, role: ColumnRole) -> int:
        """Distance of *role* from the right edge (1 = last cell)."""
        try:
            return self._from_right[role]
        except KeyError:
            raise KeyError(f"schema {self.name!r} has no {role!r} column") from None

    def cell(self, cells: list[Tag], role: ColumnRole) -> Tag:
        """Return the physical cell for *role* in a (possibly shifted) row.

        Callers check the row is wide enough first; a too-narrow row raises
        IndexError here rather than silently reading the wrong column.
        """
        idx = len(cells) - self.offset(role)
        if idx < 0:
            raise IndexError(
                f"row with {len(cells)} cells has no {role!r} column "
                f"(needs {self.offset(role)})"
            )
        return cells[idx]


# ---------------------------------------------------------------------------
# Built-in variants
# ---------------------------------------------------------------------------

ACTION_TABLE = TableSchema(
    name="actions",
    columns=(
        "name",
        "description",
        "access_level",
        "resource_type",
        "condition_keys",
        "dependent_actions",
    ),
    entity_columns=("name",),
    group_columns=("description", "access_level"),
)

RESOURCE_TYPE_TABLE = TableSchema(
    name="resource_types",
    columns=("name", "arn_pattern", "condition_keys"),
    entity_columns=("name", "arn_pattern"),
)

# No merged cells in this table: every column is read on every row.
CONDITION_KEY_TABLE = TableSchema(
    name="condition_keys",
    columns=("name", "description", "type"),
    entity_columns=("name", "description", "type"),
    merges=False,
)
