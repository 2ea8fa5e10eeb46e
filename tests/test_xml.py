"""XML body conversion and binding."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional

import pytest

from reqbind import BindEngine, BindError, Binder, Request, tagged_field
from reqbind.decoder import xml_to_data


@dataclass
class Item(Binder):
    sku: str = ""
    qty: int = 0

    def bind(self, request: Request) -> None:
        return None


@dataclass
class Order(Binder):
    order_id: str = tagged_field(xml="id", default="")
    tags: List[str] = tagged_field(xml="tag", default_factory=list)
    item: Optional[Item] = None

    def bind(self, request: Request) -> None:
        return None


def test_leaves_attributes_and_repeats() -> None:
    root = ET.fromstring(
        '<order id="7"><tag>a</tag><tag>b</tag><tag>c</tag><note>hi</note></order>'
    )
    assert xml_to_data(root) == {"id": "7", "tag": ["a", "b", "c"], "note": "hi"}


def test_namespaces_are_stripped() -> None:
    root = ET.fromstring('<o xmlns="urn:x"><name>n</name></o>')
    assert xml_to_data(root) == {"name": "n"}


def test_mixed_text_is_kept() -> None:
    root = ET.fromstring('<o kind="k">body</o>')
    assert xml_to_data(root) == {"kind": "k", "#text": "body"}


def test_deep_document_converts_without_recursion() -> None:
    depth = 5000
    root = ET.fromstring("<a>" * depth + "x" + "</a>" * depth)
    data = xml_to_data(root)
    for _ in range(depth - 2):
        data = data["a"]
    assert data == {"a": "x"}


def test_bind_order_from_xml(engine: BindEngine, make_request) -> None:
    body = (
        b'<Order id="42"><tag>rush</tag><tag>gift</tag>'
        b"<item><sku>X1</sku><qty>3</qty></item></Order>"
    )
    order = Order()
    engine.action(make_request(body, "text/xml; charset=utf-8"), order)
    assert order.order_id == "42"
    assert order.tags == ["rush", "gift"]
    assert order.item == Item(sku="X1", qty=3)


def test_single_repeatable_value_becomes_list(engine: BindEngine, make_request) -> None:
    order = Order()
    engine.action(make_request(b"<Order><tag>solo</tag></Order>", "application/xml"), order)
    assert order.tags == ["solo"]


def test_malformed_xml(engine: BindEngine, make_request) -> None:
    with pytest.raises(BindError) as excinfo:
        engine.action(make_request(b"<Order><unclosed></Order>", "application/xml"), Order())
    assert str(excinfo.value).startswith("bind failed: xml:")


def test_element_wins_over_attribute_of_same_name() -> None:
    root = ET.fromstring('<o name="a"><name>b</name></o>')
    assert xml_to_data(root) == {"name": "b"}
    root = ET.fromstring('<o name="a"><name>b</name><name>c</name></o>')
    assert xml_to_data(root) == {"name": ["b", "c"]}


def test_child_element_overrides_attribute_when_binding(engine: BindEngine, make_request) -> None:
    order = Order()
    engine.action(make_request(b'<Order id="attr"><id>elem</id></Order>', "application/xml"), order)
    assert order.order_id == "elem"


def test_empty_numeric_element_is_zero(engine: BindEngine, make_request) -> None:
    order = Order(item=Item(qty=9))
    engine.action(
        make_request(b"<Order><item><sku>X1</sku><qty></qty></item></Order>", "application/xml"),
        order,
    )
    assert order.item == Item(sku="X1", qty=0)


def test_empty_numeric_form_field_is_zero(engine: BindEngine, make_request) -> None:
    item = Item(qty=4)
    engine.action(make_request(b"sku=&qty=", "application/x-www-form-urlencoded"), item)
    assert item == Item(sku="", qty=0)
