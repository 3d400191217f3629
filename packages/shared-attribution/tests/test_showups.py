"""Tests for matching CRM leads to first-seen show-ups."""

from funnelnav.attribution.showups import ShowUpEntry, ShowUpIndex
from funnelnav.identity.attendance import DayType, FirstSeen


class TestShowUpIndex:
    """Test ShowUpIndex."""

    def test_direct_match(self):
        """A lead matches the session first attended after creation."""
        index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-09"})

        entry = index.match("Lori  SMITH", "2025-01-02")

        assert entry.date_key == "2025-01-09"

    def test_window_bounds(self):
        """Show-ups from 0 to 30 days after creation match."""
        index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-31"})

        assert index.match("Lori Smith", "2025-01-31") is not None
        assert index.match("Lori Smith", "2025-01-01") is not None
        assert index.match("Lori Smith", "2024-12-31") is None

    def test_show_up_before_lead_ignored(self):
        """A first session before the lead was created does not count."""
        index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-05"})
        assert index.match("Lori Smith", "2025-01-06") is None

    def test_containment_match(self):
        """Longer or shorter forms of the same name match by containment."""
        index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-09"})

        assert index.match("Lori Smith Jr", "2025-01-08") is not None

    def test_short_keys_never_contain_match(self):
        """Containment needs both keys at least the minimum length."""
        index = ShowUpIndex.from_first_seen({"ann lee": "2025-01-09"})

        assert index.match("Ann Leer", "2025-01-08") is None
        assert index.match("Ann Lee", "2025-01-08") is not None

    def test_device_suffix_stripped(self):
        """Device names in rosters still match the lead name."""
        index = ShowUpIndex.from_first_seen({"Lori Smith's iPhone": "2025-01-09"})
        assert index.match("Lori Smith", "2025-01-08") is not None

    def test_from_first_seen_objects(self):
        """FirstSeen records from the identity side are accepted."""
        index = ShowUpIndex.from_first_seen({
            "ken ray": FirstSeen("Ken Ray", "2025-01-09", DayType.THURSDAY),
        })

        entry = index.match("Ken Ray", "2025-01-09")

        assert entry == ShowUpEntry("ken ray", "Ken Ray", "2025-01-09", "Thursday")

    def test_first_entry_per_key_kept(self):
        """Later entries for an existing key are ignored."""
        index = ShowUpIndex([
            ShowUpEntry("lori smith", "Lori Smith", "2025-01-07"),
            ShowUpEntry("lori smith", "Lori Smith", "2025-01-09"),
        ])

        assert len(index) == 1
        assert index.match("Lori Smith", "2025-01-07").date_key == "2025-01-07"

    def test_blank_input(self):
        """Blank names or dates never match."""
        index = ShowUpIndex.from_first_seen({"lori smith": "2025-01-09"})
        assert index.match("", "2025-01-08") is None
        assert index.match("Lori Smith", "") is None
