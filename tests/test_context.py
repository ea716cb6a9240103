"""Tests for RequestContext and Principal."""

from datetime import UTC, datetime

import pytest

from guard_chain import Principal, RequestContext


def test_defaults():
    ctx = RequestContext()
    assert ctx.method == "GET"
    assert ctx.path == "/"
    assert ctx.body is None
    assert ctx.state == {}
    assert ctx.principal is None
    assert ctx.trace_id == ""
    assert isinstance(ctx.timestamp, datetime)
    assert ctx.timestamp.tzinfo == UTC


def test_method_is_upper_cased():
    assert RequestContext(method="post").method == "POST"


def test_header_lookup_is_case_insensitive():
    ctx = RequestContext(headers={"Content-Type": "application/json"})
    assert ctx.header("content-type") == "application/json"
    assert ctx.header("X-Missing") is None
    assert ctx.header("X-Missing", "fallback") == "fallback"


def test_cookie_from_mapping_and_header():
    assert RequestContext(cookies={"session": "abc"}).cookie("session") == "abc"

    ctx = RequestContext(headers={"Cookie": "theme=dark; session=xyz"})
    assert ctx.cookie("session") == "xyz"
    assert ctx.cookie("missing") is None


def test_section():
    ctx = RequestContext(body={"a": 1}, query={"page": "2"})
    assert ctx.section("body") == {"a": 1}
    assert ctx.section("query") == {"page": "2"}
    with pytest.raises(KeyError):
        ctx.section("cookies")


def test_url_sorts_query():
    ctx = RequestContext(path="/items", query={"b": "2", "a": "1"})
    assert ctx.url == "/items?a=1&b=2"
    assert RequestContext(path="/items").url == "/items"


def test_state_is_mutable():
    ctx = RequestContext()
    ctx.state["flag"] = True
    assert ctx.state["flag"] is True


def test_principal_roles_any_permissions_all():
    p = Principal(id="alice", roles=frozenset({"editor"}), permissions=frozenset({"read", "write"}))
    assert p.has_role("admin", "editor")
    assert not p.has_role("admin")
    assert p.has_permissions("read", "write")
    assert not p.has_permissions("read", "delete")


def test_principal_is_immutable():
    p = Principal(id="alice")
    with pytest.raises(AttributeError):
        p.id = "mallory"  # type: ignore[misc]
