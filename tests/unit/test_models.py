"""Tests for photobooth.core.models — template schemas and records."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from pathlib import Path

import pytest

from photobooth.core.models import (
    CommentBox,
    ComposeRequest,
    FontSpec,
    ProcessedPhoto,
    Slot,
    Template,
    TemplateDocument,
    WatchState,
    coerce_fraction,
)


class TestSlotCoercion:
    """Slots coerce malformed numeric fields to 0."""

    def test_numeric_strings_accepted(self):
        """Numeric strings should parse as floats."""
        slot = Slot.model_validate({"x": "0.25", "y": 0.5, "width": "0.1", "height": 1})
        assert (slot.x, slot.y, slot.width, slot.height) == (0.25, 0.5, 0.1, 1.0)

    def test_missing_fields_default_to_zero(self):
        """Missing fields should default to 0."""
        slot = Slot.model_validate({"x": 0.3})
        assert (slot.x, slot.y, slot.width, slot.height) == (0.3, 0.0, 0.0, 0.0)

    @pytest.mark.parametrize("value", ["abc", None, "", float("nan"), float("inf"), [1], {}])
    def test_malformed_values_become_zero(self, value):
        """Non-numeric, NaN, and infinite values should become 0."""
        assert Slot.model_validate({"x": value}).x == 0.0
        assert coerce_fraction(value) == 0.0

    def test_clamped_pulls_inside_unit_square(self):
        """clamped() should keep x+width and y+height within 1."""
        slot = Slot(x=-0.1, y=0.8, width=0.5, height=0.4).clamped()
        assert slot.x == 0.0
        assert slot.width == 0.5
        assert slot.y == 0.8
        assert math.isclose(slot.y + slot.height, 1.0)


class TestFontSpec:
    """Comment font settings."""

    def test_alias_and_defaults(self):
        """sizeRel should populate size_rel; align defaults to center."""
        font = FontSpec.model_validate({"family": "Arial", "sizeRel": 0.04})
        assert font.size_rel == 0.04
        assert font.align == "center"

    @pytest.mark.parametrize(
        "raw,expected", [("left", "start"), ("RIGHT", "end"), ("middle", "center"), ("end", "end")]
    )
    def test_align_aliases(self, raw, expected):
        """CSS-style alignment names should map to start/center/end."""
        assert FontSpec(align=raw).align == expected

    def test_unknown_align_rejected(self):
        """An unknown alignment is a validation error."""
        with pytest.raises(Exception):
            FontSpec(align="justify")


class TestTemplate:
    """Template schema and on-disk aliases."""

    def test_thumbnail_defaults_to_background(self):
        """A template without a thumbnail should reuse the background."""
        template = Template(background="blue.png", display_name="Blue")
        assert template.thumbnail == "blue.png"

    def test_display_name_defaults_to_stem(self):
        """A template without a display name should use the background stem."""
        assert Template(background="fourpic_blue.png").display_name == "fourpic_blue"

    def test_round_trip_uses_aliases(self):
        """Serialization should emit displayName/commentBox/sizeRel."""
        template = Template.model_validate(
            {
                "background": "f.png",
                "displayName": "Frame",
                "slots": [{"x": 0, "y": 0, "width": 0.5, "height": 0.5}],
                "commentBox": {
                    "x": 0.1,
                    "y": 0.8,
                    "width": 0.8,
                    "height": 0.1,
                    "font": {"family": "Arial", "color": "#fff", "sizeRel": 0.03, "align": "center"},
                },
            }
        )
        data = template.model_dump(by_alias=True, exclude_none=True)
        assert data["displayName"] == "Frame"
        assert data["commentBox"]["font"]["sizeRel"] == 0.03
        assert isinstance(template.comment_box, CommentBox)

    def test_unknown_fields_preserved(self):
        """Fields written by other tools should survive a round trip."""
        template = Template.model_validate({"background": "f.png", "printSize": "4x6"})
        assert template.model_dump(by_alias=True)["printSize"] == "4x6"


class TestTemplateDocument:
    """The persisted templates.json document."""

    def test_legacy_current_migrates(self):
        """A document with only the legacy 'current' field should select it."""
        doc = TemplateDocument.model_validate(
            {"templates": {"a": {"background": "a.png"}}, "current": "a"}
        )
        assert doc.current_template == "a"

    def test_json_dict_keeps_null_current(self):
        """current_template should always be present, even when null."""
        assert TemplateDocument().to_json_dict() == {"templates": {}, "current_template": None}


class TestComposeRequest:
    """Compose request parsing."""

    def test_assignments_follow_slot_order(self):
        """assignments() should map slot index to photo name."""
        request = ComposeRequest.model_validate(
            {
                "template": {"background": "f.png"},
                "slots": [
                    {"x": 0, "y": 0, "width": 0.5, "height": 0.5, "photo": "a.jpg"},
                    {"x": 0.5, "y": 0, "width": 0.5, "height": 0.5, "photo": None},
                ],
                "comment": "Hi",
            }
        )
        assert request.assignments() == {0: "a.jpg", 1: None}
        assert request.template.comment_box is None


class TestRecords:
    """Dataclass records exposed to API layers."""

    def test_processed_photo_to_dict(self):
        """to_dict should expose ISO and epoch modification times."""
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        photo = ProcessedPhoto("a.jpg", Path("/p/a.jpg"), Path("/p/thumbnails/a.jpg"), 10, when)
        data = photo.to_dict()
        assert data["filename"] == "a.jpg"
        assert data["size"] == 10
        assert data["lastModified"] == when.isoformat()
        assert data["modified"] == int(when.timestamp())

    def test_watch_state_to_dict(self):
        """A fresh watch state is stopped and has never scanned."""
        data = WatchState(watch_path="/in").to_dict()
        assert data == {
            "isWatching": False,
            "watchPath": "/in",
            "lastScanTime": None,
            "status": "stopped",
            "lastError": None,
        }
