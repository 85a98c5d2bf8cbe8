"""
Unit tests for approval rule storage.
"""

import pytest

from requestarr.services import ApprovalRuleStore, InvalidRuleTypeError


@pytest.fixture
def rules(db) -> ApprovalRuleStore:
    return ApprovalRuleStore(db)


class TestApprovalRuleStore:
    """Test rule CRUD and evaluation order."""

    def test_create_and_get(self, rules):
        created = rules.create("Trusted users", "user_trust", {"min_requests": 10}, description="Regulars")

        rule = rules.get(created["id"])

        assert rule["rule_type"] == "user_trust"
        assert rule["conditions"] == {"min_requests": 10}
        assert rule["enabled"] is True
        assert rules.get(9999) is None

    def test_unknown_rule_type_rejected(self, rules):
        with pytest.raises(InvalidRuleTypeError):
            rules.create("Bad", "astrology", {})

    def test_invalid_rule_type_is_a_value_error(self):
        assert issubclass(InvalidRuleTypeError, ValueError)

    def test_list_by_priority(self, rules):
        low = rules.create("Low", "genre", {"genres": [16]}, priority=1)
        high = rules.create("High", "popularity", {"min_votes": 1000}, priority=10)

        assert [r["id"] for r in rules.list_rules()] == [high["id"], low["id"]]

    def test_list_active_skips_disabled(self, rules):
        enabled = rules.create("On", "time_based", {"hours": [9, 17]})
        rules.create("Off", "content_rating", {"max": "PG-13"}, enabled=False)

        assert [r["id"] for r in rules.list_active()] == [enabled["id"]]

    def test_update_fields(self, rules):
        created = rules.create("Rule", "genre", {"genres": [16]})

        assert rules.update(created["id"], enabled=False, conditions={"genres": [99]}) is True

        rule = rules.get(created["id"])
        assert rule["enabled"] is False
        assert rule["conditions"] == {"genres": [99]}
        assert rule["updated_at"] >= created["updated_at"]

    def test_update_rejects_rule_type(self, rules):
        created = rules.create("Rule", "genre", {})

        with pytest.raises(ValueError, match="rule_type"):
            rules.update(created["id"], rule_type="popularity")

    def test_update_without_fields_or_rule(self, rules):
        created = rules.create("Rule", "genre", {})

        assert rules.update(created["id"]) is False
        assert rules.update(9999, name="x") is False

    def test_delete(self, rules):
        created = rules.create("Rule", "genre", {})

        assert rules.delete(created["id"]) is True
        assert rules.delete(created["id"]) is False
