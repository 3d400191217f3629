"""Tests for identity similarity scoring."""

from funnelnav.identity.records import CanonicalIdentity
from funnelnav.identity.similarity import (
    EMAIL_LOCAL_PART_SCORE,
    EXTERNAL_ID_SCORE,
    NAME_INITIAL_SCORE,
    MatchKind,
    email_local_part_match,
    first_name_last_initial_match,
    name_similarity,
    score_identity,
    split_email,
)


class TestNameSimilarity:
    """Test name_similarity."""

    def test_identical_names(self):
        """Identical names score 100."""
        assert name_similarity("Lori Smith", "lori  smith") == 100

    def test_word_order_ignored(self):
        """Token order does not affect the score."""
        assert name_similarity("Smith, Lori", "Lori Smith") == 100

    def test_blank_scores_zero(self):
        """A blank name never matches."""
        assert name_similarity("", "Lori Smith") == 0
        assert name_similarity(None, None) == 0

    def test_unrelated_names_score_low(self):
        """Unrelated names fall below the review band."""
        assert name_similarity("Ana Lee", "Bartholomew Chan") < 75


class TestStructuredMatches:
    """Test first-name/last-initial and email local-part signals."""

    def test_last_initial(self):
        """'Keith K' matches 'Keith Knick' in either order."""
        assert first_name_last_initial_match("Keith K", "Keith Knick")
        assert first_name_last_initial_match("Keith Knick", "Keith K.")

    def test_last_initial_requires_same_first_name(self):
        """Different first names never match."""
        assert not first_name_last_initial_match("Kevin K", "Keith Knick")

    def test_last_initial_requires_two_tokens(self):
        """Names with more or fewer than two tokens never match."""
        assert not first_name_last_initial_match("Keith", "Keith Knick")
        assert not first_name_last_initial_match("Keith K", "Keith Knick Jr")

    def test_both_initials_do_not_match(self):
        """Two bare initials are not enough."""
        assert not first_name_last_initial_match("Keith K", "Keith K")

    def test_split_email(self):
        """Emails split into local part and domain."""
        assert split_email(" Lori@Example.com ") == ("lori", "example.com")
        assert split_email("not-an-email") == ("", "")

    def test_email_local_part_on_other_domain(self):
        """Same local part on a different domain matches."""
        assert email_local_part_match("lori@work.com", "lori@home.com")
        assert not email_local_part_match("lori@work.com", "lori@work.com")
        assert not email_local_part_match("lori@work.com", "laura@home.com")


class TestScoreIdentity:
    """Test score_identity."""

    def test_external_id_wins(self):
        """A shared provider id scores 100."""
        identity = CanonicalIdentity("c1", "Lori Smith", external_user_ids={"u-1"})

        match = score_identity(identity, "Somebody Else", external_user_id="u-1")

        assert match.score == EXTERNAL_ID_SCORE
        assert match.kind == MatchKind.EXTERNAL_ID

    def test_last_initial_boost(self):
        """First name plus last initial scores as a name match."""
        identity = CanonicalIdentity("c1", "Keith Knick")

        match = score_identity(identity, "Keith K")

        assert match.score == NAME_INITIAL_SCORE
        assert match.kind == MatchKind.NAME

    def test_email_boost(self):
        """The email local part lifts a weak name match."""
        identity = CanonicalIdentity("c1", "L Smith", email="lsmith@work.com")

        match = score_identity(identity, "Lori", email="lsmith@home.com")

        assert match.score == EMAIL_LOCAL_PART_SCORE
        assert match.kind == MatchKind.EMAIL

    def test_best_alias_used(self):
        """Every alias is scored and the best one is kept."""
        identity = CanonicalIdentity("c1", "Robert Jones", name_aliases={"Bob Jones"})

        match = score_identity(identity, "Bob Jones")

        assert match.score == 100
        assert match.kind == MatchKind.FUZZY
