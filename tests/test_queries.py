"""
Tests for list queries and filter building.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from tutorsync.domain.queries import (
    MatchesQuery,
    MeetingsQuery,
    OrgsQuery,
    Query,
    UsersQuery,
    add_array_filter,
    add_filter,
    quote,
)


class TestFilterHelpers:
    def test_quote_escapes(self):
        assert quote('say "hi"') == '"say \\"hi\\""'

    def test_add_filter_to_empty(self):
        assert add_filter("", 'org = "gunn"') == 'org = "gunn"'

    def test_add_empty_expression(self):
        assert add_filter('org = "gunn"', "") == 'org = "gunn"'

    def test_array_filter_ors_within_facet(self):
        result = add_array_filter('org = "gunn"', ["Algebra", "Geometry"], "subjects")
        assert result == 'org = "gunn" AND (subjects = "Algebra" OR subjects = "Geometry")'

    def test_empty_array_is_noop(self):
        assert add_array_filter('org = "gunn"', [], "subjects") == 'org = "gunn"'


class TestQueries:
    def test_base_query_defaults(self):
        query = Query()
        assert query.page == 0
        assert query.hits_per_page == 20
        assert query.to_filter() == ""

    def test_negative_page_rejected(self):
        with pytest.raises(ValidationError):
            Query(page=-1)

    def test_unknown_facet_rejected(self):
        with pytest.raises(ValidationError):
            MatchesQuery.model_validate({"colour": "blue"})

    def test_orgs_query(self):
        assert OrgsQuery(members=["u1"]).to_filter() == '(members = "u1")'

    def test_users_query(self):
        query = UsersQuery(
            orgs=["gunn"],
            tags=["tutor", "not-vetted"],
            aspect="mentoring",
            subjects=["Chemistry"],
            visible=True,
        )
        assert query.to_filter() == (
            'visible = true AND (orgs = "gunn") '
            'AND (hit_tags = "tutor" OR hit_tags = "not-vetted") '
            'AND (mentoring_subjects = "Chemistry")'
        )

    def test_users_query_visibility_unset(self):
        assert "visible" not in UsersQuery(orgs=["gunn"]).to_filter()

    def test_matches_query(self):
        query = MatchesQuery(org="gunn", subjects=["Algebra", "Geometry"], people=["u1"])
        assert query.to_filter() == (
            'org = "gunn" AND (subjects = "Algebra" OR subjects = "Geometry") '
            'AND (people_ids = "u1")'
        )

    def test_subject_facets_combine_within_org(self):
        """Two subject values OR together while the org filter stays ANDed."""
        one = MatchesQuery(org="gunn", subjects=["Algebra"]).to_filter()
        both = MatchesQuery(org="gunn", subjects=["Algebra", "Geometry"]).to_filter()
        assert one == 'org = "gunn" AND (subjects = "Algebra")'
        assert both == 'org = "gunn" AND (subjects = "Algebra" OR subjects = "Geometry")'


class TestMeetingsQuery:
    def test_explicit_window(self):
        query = MeetingsQuery.model_validate(
            {"org": "gunn", "tags": ["not-recurring"], "from": "2024-01-07T00:00:00Z",
             "to": "2024-01-14T00:00:00Z"}
        )
        assert query.to_filter() == (
            'org = "gunn" AND (hit_tags = "not-recurring") '
            "AND time_from <= 1705190400 AND time_last >= 1704585600"
        )

    def test_default_window_is_current_week(self):
        query = MeetingsQuery()
        assert query.from_.weekday() == 6
        assert query.from_ <= datetime.now(timezone.utc)
        assert query.to - query.from_ == timedelta(days=7)
        assert query.hits_per_page == 1000

    def test_to_defaults_to_a_week_after_from(self):
        query = MeetingsQuery.model_validate({"from": "2024-01-07T00:00:00Z"})
        assert query.to == datetime(2024, 1, 14, tzinfo=timezone.utc)

    def test_window_must_not_be_reversed(self):
        with pytest.raises(ValidationError):
            MeetingsQuery.model_validate(
                {"from": "2024-01-14T00:00:00Z", "to": "2024-01-07T00:00:00Z"}
            )

    def test_match_tags_rejected(self):
        with pytest.raises(ValidationError):
            MeetingsQuery(tags=["meeting"])
