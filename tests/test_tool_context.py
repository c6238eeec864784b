"""Tests for ExecutionContext creation and permission ordering."""

from __future__ import annotations

import dataclasses
import re

import pytest

from scout.tools.base import Permission, has_permission, tool_key
from scout.tools.context import DEFAULT_PERMISSIONS, ExecutionContext, create_execution_context


class TestPermissionOrdering:
    @pytest.mark.parametrize(
        ("granted", "required", "expected"),
        [
            ({Permission.read}, Permission.read, True),
            ({Permission.read}, Permission.write, False),
            ({Permission.execute}, Permission.write, True),
            ({Permission.execute}, Permission.admin, False),
            ({Permission.admin}, Permission.read, True),
            (set(), Permission.read, False),
        ],
    )
    def test_any_level_at_or_above(self, granted, required, expected):
        assert has_permission(frozenset(granted), required) is expected


class TestCreateExecutionContext:
    def test_defaults(self):
        ctx = create_execution_context()
        assert ctx.caller_id == "anonymous"
        assert re.fullmatch(r"session_\d+", ctx.session_id)
        assert ctx.granted_permissions == DEFAULT_PERMISSIONS
        assert ctx.allows(Permission.execute)
        assert not ctx.allows(Permission.admin)

    def test_explicit_values(self):
        ctx = create_execution_context(
            caller_id="user_9", session_id="sess_9", permissions=["read"]
        )
        assert ctx.caller_id == "user_9"
        assert ctx.session_id == "sess_9"
        assert ctx.granted_permissions == frozenset({Permission.read})
        assert not ctx.allows(Permission.write)

    def test_unknown_permission_raises(self):
        with pytest.raises(ValueError):
            create_execution_context(permissions=["superuser"])

    def test_frozen(self):
        ctx = ExecutionContext()
        with pytest.raises(dataclasses.FrozenInstanceError):
            ctx.caller_id = "someone_else"  # type: ignore[misc]

    def test_fresh_per_call(self):
        assert create_execution_context() is not create_execution_context()


def test_tool_key_sanitizes_dots_and_dashes():
    assert tool_key("map.draw-search.area") == "map_draw_search_area"
