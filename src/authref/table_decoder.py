"""Rowspan-aware decoding of the reference tables into records.

The actions table expresses three nesting levels with merged cells:

    action (rowspan = all its rows)
      └─ description group (rowspan = rows sharing one description)
           └─ resource-type row (one per row)

A merged cell is physically present only on the first row it covers; the
rows below it lose that cell and their remaining cells shift left. The
decoder tracks, per column group, the row index where the current span ends
(the *span frontier*) and reads the trailing columns from the right edge via
the ``TableSchema``.

State machine (one instance per decode call)::

    AWAITING_ENTITY ──open entity──► AWAITING_DESCRIPTION ──open group──► CONSUMING_ROWS
          ▲                                   │ description already set          │
          │                                   └──── advance_to(entity_end) ──────┤
          └───────────── row reaches entity_end ─────────────────────────────────┘

Tables without group columns go straight from AWAITING_ENTITY to
CONSUMING_ROWS. The condition keys table has no merged cells and is decoded
row by row (``decode_condition_key_table``).
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Literal, Protocol

from bs4 import Tag

from authref.authref_types import (
    PERMISSION_ONLY_MARKER,
    Action,
    ActionResourceType,
    ConditionKey,
    MalformedSpanWarning,
    ResourceType,
    ShapeError,
)
from authref.html_utils import (
    gather_text,
    get_attr,
    paragraph_values,
    render_to_string,
    row_cells,
    table_rows,
)
from authref.table_schema import (
    ACTION_TABLE,
    CONDITION_KEY_TABLE,
    RESOURCE_TYPE_TABLE,
    TableSchema,
)

log = logging.getLogger(__name__)

type DecoderState = Literal["awaiting_entity", "awaiting_description", "consuming_rows"]

REQUIRED_SUFFIX = "*"


# ---------------------------------------------------------------------------
# Span handling
# ---------------------------------------------------------------------------


def parse_span(value: str, *, row_index: int = -1, table: str = "") -> int:
    """Read a ``rowspan`` attribute value; absent or malformed reads as 1.

    A value that is not a positive integer emits ``MalformedSpanWarning``
    naming *table* and *row_index*, and falls back to 1 so one bad attribute
    does not abort the page.
    """
    value = value.strip()
    if not value:
        return 1
    try:
        span = int(value)
    except ValueError:
        span = 0
    if span < 1:
        warnings.warn(
            f"{table or 'unnamed'} table: row {row_index}: rowspan {value!r} "
            "is not a positive integer, using 1",
            MalformedSpanWarning,
            stacklevel=3,
        )
        return 1
    return span


def cell_span(cell: Tag, *, row_index: int = -1, table: str = "") -> int:
    return parse_span(get_attr(cell, "rowspan"), row_index=row_index, table=table)


@dataclass(slots=True)
class SpanFrontier:
    """Row index (exclusive) where each open span ends; 0 means expired."""

    entity_end: int = 0
    description_end: int = 0

    def entity_expired(self, row: int) -> bool:
        return row >= self.entity_end

    def description_expired(self, row: int) -> bool:
        return row >= self.description_end


# ---------------------------------------------------------------------------
# Record builders (one per table variant)
# ---------------------------------------------------------------------------


class RecordBuilder[R](Protocol):
    """Turns the rows the state machine hands over into records."""

    records: list[R]

    def open_entity(self, cells: list[Tag], schema: TableSchema) -> None: ...

    def open_group(self, cells: list[Tag], schema: TableSchema) -> bool:
        """Start a description group; False skips to the next entity."""
        ...

    def consume_row(self, cells: list[Tag], schema: TableSchema) -> None: ...


def _read_entity_name(cell: Tag) -> tuple[str, str, bool]:
    """Return (name, reference_href, permission_only) for an action key cell.

    The name is the embedded link's text when there is a link, else the first
    whitespace-delimited token of the cell, so a trailing marker such as
    ``[permission only]`` never leaks into the name.
    """
    raw = gather_text(cell)
    permission_only = PERMISSION_ONLY_MARKER in raw
    link = cell.select_one("a[href]")
    if link is not None:
        return gather_text(link), get_attr(link, "href"), permission_only
    tokens = raw.split(maxsplit=1)
    return (tokens[0] if tokens else ""), "", permission_only


class ActionTableBuilder:
    """Builds ``Action`` records; the first description group of an action wins."""

    def __init__(self) -> None:
        self.records: list[Action] = []

    @property
    def current(self) -> Action:
        return self.records[-1]

    def open_entity(self, cells: list[Tag], schema: TableSchema) -> None:
        name, href, permission_only = _read_entity_name(schema.cell(cells, "name"))
        self.records.append(Action(
            name=name,
            permission_only=permission_only,
            reference_href=href,
        ))

    def open_group(self, cells: list[Tag], schema: TableSchema) -> bool:
        action = self.current
        # Later groups are alternate usage scenarios of the same action.
        if action.description:
            return False
        action.description = gather_text(schema.cell(cells, "description"))
        action.access_level = gather_text(schema.cell(cells, "access_level"))
        return True

    def consume_row(self, cells: list[Tag], schema: TableSchema) -> None:
        field_text = gather_text(schema.cell(cells, "resource_type"))
        resource_type = field_text.removesuffix(REQUIRED_SUFFIX).rstrip()
        if not resource_type:
            return
        self.current.resource_types.append(ActionResourceType(
            resource_type=resource_type,
            required=field_text.endswith(REQUIRED_SUFFIX),
            condition_keys=paragraph_values(schema.cell(cells, "condition_keys")),
            dependent_actions=paragraph_values(schema.cell(cells, "dependent_actions")),
        ))


class ResourceTypeTableBuilder:
    """Builds ``ResourceType`` records; continuation rows add condition keys."""

    def __init__(self) -> None:
        self.records: list[ResourceType] = []

    def open_entity(self, cells: list[Tag], schema: TableSchema) -> None:
        name_cell = schema.cell(cells, "name")
        link = name_cell.select_one("a[href]")
        self.records.append(ResourceType(
            name=gather_text(name_cell),
            reference_href=get_attr(link, "href"),
            arn_pattern=gather_text(schema.cell(cells, "arn_pattern")),
        ))

    def open_group(self, cells: list[Tag], schema: TableSchema) -> bool:
        return True

    def consume_row(self, cells: list[Tag], schema: TableSchema) -> None:
        self.records[-1].condition_keys.extend(
            paragraph_values(schema.cell(cells, "condition_keys"))
        )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class SpannedTableDecoder[R]:
    """Walks the data rows of one table, tracking entity and group spans.

    Not reusable: one instance decodes one table.
    """

    def __init__(self, schema: TableSchema, builder: RecordBuilder[R]) -> None:
        if not schema.merges:
            raise ValueError(f"schema {schema.name!r} has no merged cells")
        self.schema = schema
        self.builder = builder
        self.frontier = SpanFrontier()
        self.state: DecoderState = "awaiting_entity"
        self.cursor = 1  # row 0 is the header

    def advance_to(self, row: int) -> None:
        """Move the cursor to *row*, skipping every row in between."""
        if row <= self.cursor:
            raise ValueError(f"cannot move cursor back from {self.cursor} to {row}")
        self.cursor = row

    def decode(self, table: Tag) -> list[R]:
        rows = table_rows(table)
        while self.cursor < len(rows):
            self._step(self.cursor, rows[self.cursor])
        return self.builder.records

    def _step(self, row: int, row_node: Tag) -> None:
        cells = row_cells(row_node)
        schema = self.schema
        group_role = schema.group_role

        if self.frontier.entity_expired(row):
            self.state = "awaiting_entity"
        elif group_role is not None and self.frontier.description_expired(row):
            self.state = "awaiting_description"

        if self.state == "awaiting_entity":
            self._check_width(row, row_node, cells, exact=schema.width, what="entity")
            key_cell = schema.cell(cells, schema.entity_columns[0])
            self.frontier.entity_end = row + cell_span(key_cell, row_index=row, table=schema.name)
            self.frontier.description_end = row
            self.builder.open_entity(cells, schema)
            self.state = "consuming_rows" if group_role is None else "awaiting_description"

        if self.state == "awaiting_description" and group_role is not None:
            self._check_width(row, row_node, cells, minimum=schema.group_width, what="group")
            group_cell = schema.cell(cells, group_role)
            self.frontier.description_end = row + cell_span(
                group_cell, row_index=row, table=schema.name,
            )
            if not self.builder.open_group(cells, schema):
                log.debug(
                    "%s table: row %d repeats a description group, skipping to row %d",
                    schema.name, row, self.frontier.entity_end,
                )
                self.state = "awaiting_entity"
                self.advance_to(self.frontier.entity_end)
                return
            self.state = "consuming_rows"

        self._check_width(row, row_node, cells, minimum=schema.leaf_width, what="data")
        self.builder.consume_row(cells, schema)
        self.advance_to(row + 1)

    def _check_width(
        self,
        row: int,
        row_node: Tag,
        cells: list[Tag],
        *,
        exact: int | None = None,
        minimum: int = 0,
        what: str,
    ) -> None:
        if exact is not None and len(cells) != exact:
            raise ShapeError(
                f"{self.schema.name} table: {what} row {row} has {len(cells)} cells "
                f"(expected {exact})",
                row_index=row,
                expected=exact,
                actual=len(cells),
                row_html=render_to_string(row_node),
            )
        if len(cells) < minimum:
            raise ShapeError(
                f"{self.schema.name} table: {what} row {row} has {len(cells)} cells "
                f"(expected at least {minimum})",
                row_index=row,
                expected=minimum,
                actual=len(cells),
                row_html=render_to_string(row_node),
            )


def decode_spanned_table[R](
    table: Tag,
    schema: TableSchema,
    builder: RecordBuilder[R],
) -> list[R]:
    """Decode *table* with *schema*, feeding rows to *builder*.

    Raises:
        ShapeError: a row opening an entity has other than ``schema.width``
            cells, or any row is too narrow for the columns it must carry.
    """
    records = SpannedTableDecoder(schema, builder).decode(table)
    log.debug("%s table: decoded %d records", schema.name, len(records))
    return records


# ---------------------------------------------------------------------------
# Table variants
# ---------------------------------------------------------------------------


def decode_action_table(table: Tag, schema: TableSchema = ACTION_TABLE) -> list[Action]:
    """Decode the "Actions defined by ..." table into ``Action`` records."""
    return decode_spanned_table(table, schema, ActionTableBuilder())


def decode_resource_type_table(
    table: Tag,
    schema: TableSchema = RESOURCE_TYPE_TABLE,
) -> list[ResourceType]:
    """Decode the "Resource types defined by ..." table."""
    return decode_spanned_table(table, schema, ResourceTypeTableBuilder())


def decode_condition_key_table(
    table: Tag,
    schema: TableSchema = CONDITION_KEY_TABLE,
) -> list[ConditionKey]:
    """Decode the "Condition keys for ..." table: one row, one record."""
    condition_keys: list[ConditionKey] = []
    rows = table_rows(table)
    for row in range(1, len(rows)):
        cells = row_cells(rows[row])
        if len(cells) != schema.width:
            raise ShapeError(
                f"{schema.name} table: row {row} has {len(cells)} cells "
                f"(expected {schema.width})",
                row_index=row,
                expected=schema.width,
                actual=len(cells),
                row_html=render_to_string(rows[row]),
            )
        name_cell = schema.cell(cells, "name")
        link = name_cell.select_one("a[href]")
        condition_keys.append(ConditionKey(
            name=gather_text(name_cell),
            reference_href=get_attr(link, "href"),
            description=gather_text(schema.cell(cells, "description")),
            type=gather_text(schema.cell(cells, "type")),
        ))
    log.debug("%s table: decoded %d records", schema.name, len(condition_keys))
    return condition_keys
