# hr_platform/modules/payroll/tests/test_identity_matcher.py

"""
Tests for payroll name to roster identity resolution.
"""

import pytest
from decimal import Decimal

from hr_platform.modules.payroll.enums.payroll_enums import (
    PayrollComponentKey as C,
    PayrollIdentityStatus,
)
from hr_platform.modules.payroll.exceptions import (
    PayrollNotFoundError,
    PayrollValidationError,
)
from hr_platform.modules.payroll.models import PayrollIdentityMapping, PayrollInputValue
from hr_platform.modules.payroll.schemas.error_schemas import PayrollErrorCodes
from hr_platform.modules.payroll.services.identity_matcher import (
    ROSTER_ALIAS_NOTE,
    IdentityMatcher,
    RosterMember,
    build_roster_alias_map,
)


class TestRosterAliasMap:
    """Test cases for round-robin roster aliasing"""

    def test_round_robin_over_sorted_roster(self):
        roster = [RosterMember(7, "Zara"), RosterMember(3, "adam"), RosterMember(5, "Bina")]
        names = ["W1", "W2", "W3", "W4", "W5"]

        alias_map = build_roster_alias_map(names, roster)

        # Sorted roster: adam(3), Bina(5), Zara(7)
        assert [alias_map[n.lower()].user_id for n in names] == [3, 5, 7, 3, 5]
        assert alias_map["w4"].payroll_name == "adam"

    def test_duplicate_spellings_share_alias(self):
        roster = [RosterMember(1, "Ali"), RosterMember(2, "Sara")]
        alias_map = build_roster_alias_map(["Ghost One", "GHOST  one", "Ghost Two"], roster)

        assert len(alias_map) == 2
        assert alias_map["ghost one"].user_id == 1
        assert alias_map["ghost two"].user_id == 2

    def test_deterministic(self):
        roster = [RosterMember(2, "B"), RosterMember(1, "A")]
        names = ["x", "y", "z"]
        assert build_roster_alias_map(names, roster) == build_roster_alias_map(names, list(reversed(roster)))

    def test_empty_roster_rejected(self):
        with pytest.raises(PayrollValidationError) as exc_info:
            build_roster_alias_map(["Ali"], [])
        assert exc_info.value.code == PayrollErrorCodes.EMPTY_ROSTER


class TestIdentityMatcher:
    """Test cases for the persisted alias table"""

    def test_load_employee_roster_excludes_non_employees(self, db_session, roster):
        members = IdentityMatcher(db_session).load_employee_roster()
        assert sorted(m.name for m in members) == ["Ali Raza", "Bilal Ahmed", "Sara Khan"]

    def test_sync_statuses(self, db_session, roster, staff_factory):
        staff_factory("Sara Khan", email="second.sara@hr.local")
        matcher = IdentityMatcher(db_session)

        result = matcher.sync_identity_mappings(["ALI  RAZA", "Sara Khan", "Unknown Person", ""])

        assert result.summary.total == 3
        assert result.summary.auto_matched == 1
        assert result.summary.ambiguous == 1
        assert result.summary.unresolved == 1
        assert result.resolutions["ali raza"].user_id == roster[0].id
        assert result.resolutions["sara khan"].status == PayrollIdentityStatus.AMBIGUOUS
        assert result.resolutions["unknown person"].user_id is None

    def test_sync_keeps_existing_matches(self, db_session, roster):
        matcher = IdentityMatcher(db_session)
        matcher.sync_identity_mappings(["Mystery"])
        mapping = db_session.query(PayrollIdentityMapping).one()
        matcher.resolve_identity_mapping(mapping.id, roster[1].id, notes="Confirmed by HR")

        result = matcher.sync_identity_mappings(["MYSTERY"])

        assert result.summary.auto_matched == 1
        db_session.refresh(mapping)
        assert mapping.status == PayrollIdentityStatus.MANUAL_MATCHED
        assert mapping.user_id == roster[1].id
        assert mapping.display_payroll_name == "MYSTERY"

    def test_resolve_requires_employee(self, db_session, roster, staff_factory):
        from hr_platform.modules.staff.enums.staff_enums import StaffRole

        manager = staff_factory("Pay Manager", role=StaffRole.PAYROLL_MANAGER)
        matcher = IdentityMatcher(db_session)
        matcher.sync_identity_mappings(["Mystery"])
        mapping = db_session.query(PayrollIdentityMapping).one()

        with pytest.raises(PayrollValidationError):
            matcher.resolve_identity_mapping(mapping.id, manager.id)

    def test_resolve_missing_mapping(self, db_session, roster):
        with pytest.raises(PayrollNotFoundError):
            IdentityMatcher(db_session).resolve_identity_mapping(999, roster[0].id)

    def test_upsert_roster_aliases_is_idempotent(self, db_session, roster):
        matcher = IdentityMatcher(db_session)
        alias_map = build_roster_alias_map(
            ["W1", "W2", "W3", "W4"], matcher.load_employee_roster()
        )

        # Four workbook names collapse onto three roster names
        assert matcher.upsert_roster_aliases(alias_map, chunk_size=2) == 3
        assert matcher.upsert_roster_aliases(alias_map, chunk_size=2) == 0

        mappings = db_session.query(PayrollIdentityMapping).all()
        assert len(mappings) == 3
        assert all(m.status == PayrollIdentityStatus.MANUAL_MATCHED for m in mappings)
        assert all(m.notes == ROSTER_ALIAS_NOTE for m in mappings)

    def test_find_blocked_payroll_names(self, db_session, roster, period_factory):
        period = period_factory("03/2025", {
            "Ali Raza": {C.BASIC_SALARY: 100000},
            "Unknown Person": {C.BASIC_SALARY: 50000},
            "Bilal Ahmed": {C.BASIC_SALARY: 70000},
        })
        matcher = IdentityMatcher(db_session)
        matcher.sync_identity_mappings(["Ali Raza", "Unknown Person"])

        # Bilal has no mapping row at all, Unknown Person is UNRESOLVED
        assert matcher.find_blocked_payroll_names(period.id) == ["Bilal Ahmed", "Unknown Person"]

        db_session.query(PayrollInputValue).filter(
            PayrollInputValue.payroll_name == "Bilal Ahmed"
        ).update({PayrollInputValue.user_id: roster[2].id})
        db_session.commit()
        assert matcher.find_blocked_payroll_names(period.id) == ["Unknown Person"]

    def test_list_mappings_filters_by_status(self, db_session, roster):
        matcher = IdentityMatcher(db_session)
        matcher.sync_identity_mappings(["Ali Raza", "Nobody", "Someone Else"])

        unresolved = matcher.list_mappings(status=PayrollIdentityStatus.UNRESOLVED)

        assert [m.normalized_payroll_name for m in unresolved] == ["nobody", "someone else"]
        assert len(matcher.list_mappings(limit=1)) == 1
