"""Tests for alias edge management and session deduplication."""

import pytest
from funnelnav.identity.aliases import AliasEdge, build_alias_map, merge_alias_edges
from funnelnav.identity.config import IdentityConfig
from funnelnav.identity.dedupe import RawParticipant, SessionDeduper
from funnelnav.identity.exceptions import AliasError


class TestBuildAliasMap:
    """Test build_alias_map."""

    def test_keys_are_normalized(self):
        """Original names are normalized; targets are trimmed."""
        alias_map = build_alias_map([{"original_name": "  LORI  ", "target_name": " Lori Smith "}])
        assert alias_map == {"lori": "Lori Smith"}

    def test_blank_rows_skipped(self):
        """Rows with a blank original or target are ignored."""
        rows = [
            {"original_name": "", "target_name": "X"},
            {"original_name": "Y", "target_name": None},
            AliasEdge("Emil", "Emil Bakiyev"),
        ]
        assert build_alias_map(rows) == {"emil": "Emil Bakiyev"}


class TestMergeAliasEdges:
    """Test merge_alias_edges."""

    def test_retargets_and_appends(self):
        """Edges pointing at the source move to the target."""
        edges = [AliasEdge("Lori's iPhone", "Lori S"), AliasEdge("Emil", "Emil Bakiyev")]

        merged = merge_alias_edges(edges, "Lori S", "Lori Smith")

        assert [(e.original_name, e.target_name) for e in merged] == [
            ("Lori's iPhone", "Lori Smith"),
            ("Emil", "Emil Bakiyev"),
            ("Lori S", "Lori Smith"),
        ]

    def test_drops_edges_from_source_or_target(self):
        """Existing edges out of source or target are replaced."""
        edges = [AliasEdge("Lori S", "Someone Else"), AliasEdge("Lori Smith", "Lori S")]

        merged = merge_alias_edges(edges, "Lori S", "Lori Smith")

        assert [(e.original_name, e.target_name) for e in merged] == [("Lori S", "Lori Smith")]

    def test_input_not_modified(self):
        """The input edge list is left untouched."""
        edges = [AliasEdge("A", "B")]
        merge_alias_edges(edges, "B", "C")
        assert edges == [AliasEdge("A", "B")]

    @pytest.mark.parametrize("source,target", [("", "Lori"), ("Lori", " "), ("Lori", "LORI")])
    def test_invalid_names_rejected(self, source, target):
        """Blank or equal normalized names raise AliasError."""
        with pytest.raises(AliasError):
            merge_alias_edges([], source, target)


class TestSessionDeduper:
    """Test SessionDeduper."""

    def test_collapses_variants(self):
        """Short names and device connections collapse into the richest record."""
        deduper = SessionDeduper()

        names = deduper.dedupe([
            RawParticipant("Emil"),
            RawParticipant("Emil Bakiyev", email="e@x.com"),
            RawParticipant("Lori's iPhone", device_flag=True),
            RawParticipant("Lori Smith", email="l@x.com"),
        ])

        assert names == ["Emil Bakiyev", "Lori Smith"]

    def test_drops_notetaker_bots(self):
        """Notetaker bots never count as attendees."""
        names = SessionDeduper().dedupe([
            {"name": "Fireflies.ai Notetaker"},
            {"name": "Lori Smith"},
            {"name": "Fathom"},
        ])
        assert names == ["Lori Smith"]

    def test_same_email_is_one_person(self):
        """Two records with the same email are one attendee."""
        attendees = SessionDeduper().dedupe_attendees([
            {"name": "Keith K", "user_email": "KEITH@x.com"},
            {"name": "Keith Knick", "user_email": "keith@x.com"},
        ])

        assert len(attendees) == 1
        assert attendees[0].name == "Keith Knick"
        assert attendees[0].email == "keith@x.com"

    def test_distinct_people_kept(self):
        """Unrelated names are all kept."""
        names = SessionDeduper().dedupe([RawParticipant("Ana Lee"), RawParticipant("Bo Chan")])
        assert sorted(names) == ["Ana Lee", "Bo Chan"]

    def test_alias_map_applied(self):
        """Alias edges are resolved before matching."""
        alias_map = build_alias_map([AliasEdge("Ken (iPhone)", "Ken Adams")])
        names = SessionDeduper().dedupe(
            [RawParticipant("Ken (iPhone)"), RawParticipant("Ken Adams")], alias_map
        )
        assert names == ["Ken Adams"]

    def test_blank_names_ignored(self):
        """Blank roster entries are skipped."""
        assert SessionDeduper().dedupe([RawParticipant("   ")]) == []

    def test_custom_bot_keywords(self):
        """Bot keywords come from the configuration."""
        deduper = SessionDeduper(config=IdentityConfig(bot_keywords=("recorder",)))
        assert deduper.dedupe([RawParticipant("Meeting Recorder"), RawParticipant("Ana Lee")]) == [
            "Ana Lee"
        ]
