"""Selector queries over one service reference page.

Locates the three reference tables and the page-level fields (service
prefix, API reference link) and hands the tables to ``table_decoder``.
Selectors are plain strings evaluated by soupsieve through BeautifulSoup's
``select``/``select_one``; they are grouped in an immutable ``PageSelectors``
value so a caller can swap them when the page layout moves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from authref.authref_types import (
    Action,
    ConditionKey,
    ResourceType,
    ServiceAuthorizationReference,
    ShapeError,
    Topic,
)
from authref.html_utils import gather_text, get_attr
from authref.table_decoder import (
    decode_action_table,
    decode_condition_key_table,
    decode_resource_type_table,
)

log = logging.getLogger(__name__)

_TABLE_CONTAINER = 'div[class*="table-container"] table'


@dataclass(frozen=True, slots=True)
class PageSelectors:
    """CSS selectors for the parts of a service reference page."""

    action_table: str = (
        f'h2:-soup-contains-own("Actions defined by") ~ {_TABLE_CONTAINER}'
    )
    resource_type_table: str = (
        f'h2:-soup-contains-own("Resource types defined by") + p + {_TABLE_CONTAINER}'
    )
    condition_key_table: str = (
        f'h2:-soup-contains-own("Condition keys for") + p + p + {_TABLE_CONTAINER}'
    )
    service_prefix: str = (
        '#main-col-body > p:-soup-contains-own("service prefix:") > code[class*="code"]'
    )
    api_reference_link: str = (
        '#main-col-body a[href]:-soup-contains-own("API operations available for")'
    )


DEFAULT_SELECTORS = PageSelectors()


def parse_actions(
    page: BeautifulSoup | Tag,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> list[Action]:
    """Decode the actions table; every reference page must have one."""
    table = page.select_one(selectors.action_table)
    if table is None:
        raise ShapeError(
            "actions table not found",
            row_index=-1,
            expected=1,
            actual=0,
        )
    return decode_action_table(table)


def parse_resource_types(
    page: BeautifulSoup | Tag,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> list[ResourceType]:
    """Decode the resource types table; services without one yield []."""
    table = page.select_one(selectors.resource_type_table)
    if table is None:
        return []
    return decode_resource_type_table(table)


def parse_condition_keys(
    page: BeautifulSoup | Tag,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> list[ConditionKey]:
    """Decode the condition keys table; services without one yield []."""
    table = page.select_one(selectors.condition_key_table)
    if table is None:
        return []
    return decode_condition_key_table(table)


def parse_service_prefix(
    page: BeautifulSoup | Tag,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> str:
    node = page.select_one(selectors.service_prefix)
    return gather_text(node)


def parse_api_reference_href(
    page: BeautifulSoup | Tag,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> str:
    node = page.select_one(selectors.api_reference_link)
    return get_attr(node, "href")


def parse_service_page(
    page: BeautifulSoup | Tag,
    topic: Topic,
    selectors: PageSelectors = DEFAULT_SELECTORS,
) -> ServiceAuthorizationReference:
    """Decode one service page into a ``ServiceAuthorizationReference``.

    Raises:
        ShapeError: the actions table is missing or any table has drifted
            from its schema.
    """
    ref = ServiceAuthorizationReference(
        name=topic.name,
        auth_reference_href=topic.url,
    )
    ref.actions = parse_actions(page, selectors)
    ref.condition_keys = parse_condition_keys(page, selectors)
    ref.resource_types = parse_resource_types(page, selectors)
    ref.api_reference_href = parse_api_reference_href(page, selectors)
    ref.service_prefix = parse_service_prefix(page, selectors)
    if not ref.service_prefix:
        log.warning("%s: service prefix not found on %s", topic.name, topic.url)
    log.debug(
        "%s: %d actions, %d resource types, %d condition keys",
        topic.name,
        len(ref.actions),
        len(ref.resource_types),
        len(ref.condition_keys),
    )
    return ref
