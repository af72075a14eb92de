# hr_platform/modules/payroll/services/identity_matcher.py

"""
Resolution of workbook payroll names to roster members.

Names are compared by their normalized key. A persisted alias table
remembers every decision; ambiguous or unknown names are recorded as such
and never auto-picked.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy.orm import Session

from hr_platform.core.config import settings
from hr_platform.core.database_utils import bulk_insert_chunked
from hr_platform.modules.staff.enums.staff_enums import StaffRole
from hr_platform.modules.staff.models.staff_models import StaffMember
from ..enums.payroll_enums import PayrollIdentityStatus
from ..exceptions import PayrollNotFoundError, PayrollValidationError
from ..models.payroll_import import PayrollIdentityMapping
from ..models.payroll_models import PayrollInputValue
from ..schemas.error_schemas import PayrollErrorCodes
from ..schemas.payroll_schemas import (
    IdentityResolution,
    MappingSummary,
    MappingSyncResult,
)
from .normalizers import normalize_payroll_name

logger = logging.getLogger(__name__)

ROSTER_ALIAS_NOTE = "Backfill roster alias (dummy workbook mode)"

MATCHED_STATUSES = (
    PayrollIdentityStatus.AUTO_MATCHED,
    PayrollIdentityStatus.MANUAL_MATCHED,
)
BLOCKING_STATUSES = (
    PayrollIdentityStatus.AMBIGUOUS,
    PayrollIdentityStatus.UNRESOLVED,
)


class RosterMember(NamedTuple):
    id: int
    name: str


class RosterAlias(NamedTuple):
    payroll_name: str
    user_id: int


def _distinct_names(names: Iterable[Optional[str]]) -> Dict[str, str]:
    """Map normalized key -> first trimmed spelling, in input order."""
    distinct: Dict[str, str] = {}
    for name in names:
        trimmed = (name or "").strip()
        if not trimmed:
            continue
        key = normalize_payroll_name(trimmed)
        if key and key not in distinct:
            distinct[key] = trimmed
    return distinct


def build_roster_alias_map(
    workbook_names: Sequence[str], roster: Sequence[RosterMember]
) -> Dict[str, RosterAlias]:
    """
    Deterministically assign workbook names to roster employees.

    The i-th distinct workbook name is mapped to roster member ``i mod M``
    of the roster sorted by name. Used for demo workbooks whose names do
    not correspond to real staff.

    Args:
        workbook_names: Payroll names as they appear in the workbook
        roster: Active employee roster

    Returns:
        Alias per normalized workbook name

    Raises:
        PayrollValidationError: If the roster is empty
    """
    if not roster:
        raise PayrollValidationError(
            "No EMPLOYEE users found for roster alias mapping",
            field="roster",
            code=PayrollErrorCodes.EMPTY_ROSTER,
        )

    sorted_roster = sorted(roster, key=lambda member: (member.name.casefold(), member.id))
    alias_map: Dict[str, RosterAlias] = {}
    for index, normalized in enumerate(_distinct_names(workbook_names)):
        employee = sorted_roster[index % len(sorted_roster)]
        alias_map[normalized] = RosterAlias(payroll_name=employee.name, user_id=employee.id)
    return alias_map


class IdentityMatcher:
    """Persistent payroll name alias management."""

    def __init__(self, db: Session):
        self.db = db

    def load_employee_roster(self) -> List[RosterMember]:
        """Active EMPLOYEE staff ordered by name."""
        rows = (
            self.db.query(StaffMember.id, StaffMember.name)
            .filter(
                StaffMember.role == StaffRole.EMPLOYEE,
                StaffMember.is_active.is_(True),
            )
            .order_by(StaffMember.name, StaffMember.id)
            .all()
        )
        return [RosterMember(id=row.id, name=row.name) for row in rows]

    def sync_identity_mappings(
        self,
        payroll_names: Sequence[str],
        roster: Optional[Sequence[RosterMember]] = None,
    ) -> MappingSyncResult:
        """
        Match payroll names against the roster and upsert the alias table.

        Existing matched aliases are kept (only the display name is
        refreshed). Other names get AUTO_MATCHED for a single roster
        candidate, AMBIGUOUS for several and UNRESOLVED for none.

        Args:
            payroll_names: Names to resolve
            roster: Roster to match against, defaults to the employee roster

        Returns:
            Summary counts plus the resolution per normalized name
        """
        distinct = _distinct_names(payroll_names)
        if roster is None:
            roster = self.load_employee_roster()

        candidates_by_key: Dict[str, List[RosterMember]] = {}
        for member in roster:
            candidates_by_key.setdefault(normalize_payroll_name(member.name), []).append(member)

        existing_by_key = {}
        if distinct:
            existing_by_key = {
                mapping.normalized_payroll_name: mapping
                for mapping in self.db.query(PayrollIdentityMapping)
                .filter(PayrollIdentityMapping.normalized_payroll_name.in_(list(distinct)))
                .all()
            }

        now = datetime.utcnow()
        summary = MappingSummary(total=len(distinct))
        resolutions: Dict[str, IdentityResolution] = {}

        for normalized, display_name in distinct.items():
            mapping = existing_by_key.get(normalized)

            if mapping is not None and mapping.status in MATCHED_STATUSES:
                mapping.display_payroll_name = display_name
                summary.auto_matched += 1
            else:
                matches = candidates_by_key.get(normalized, [])
                if len(matches) == 1:
                    status, user_id = PayrollIdentityStatus.AUTO_MATCHED, matches[0].id
                    summary.auto_matched += 1
                elif len(matches) > 1:
                    status, user_id = PayrollIdentityStatus.AMBIGUOUS, None
                    summary.ambiguous += 1
                else:
                    status, user_id = PayrollIdentityStatus.UNRESOLVED, None
                    summary.unresolved += 1

                if mapping is None:
                    mapping = PayrollIdentityMapping(normalized_payroll_name=normalized)
                    self.db.add(mapping)
                mapping.display_payroll_name = display_name
                mapping.status = status
                mapping.user_id = user_id
                mapping.last_matched_at = now if user_id else None

            resolutions[normalized] = IdentityResolution(
                normalized_payroll_name=normalized,
                display_payroll_name=display_name,
                status=mapping.status,
                user_id=mapping.user_id,
            )

        self.db.commit()
        logger.info(
            "Synced %d payroll names: %d matched, %d ambiguous, %d unresolved",
            summary.total,
            summary.auto_matched,
            summary.ambiguous,
            summary.unresolved,
        )
        return MappingSyncResult(summary=summary, resolutions=resolutions)

    def resolve_identity_mapping(
        self, mapping_id: int, user_id: int, notes: Optional[str] = None
    ) -> PayrollIdentityMapping:
        """
        Manually bind an alias to an employee.

        Raises:
            PayrollNotFoundError: If the mapping does not exist
            PayrollValidationError: If the user is not an EMPLOYEE roster member
        """
        mapping = self.db.query(PayrollIdentityMapping).filter(
            PayrollIdentityMapping.id == mapping_id
        ).first()
        if not mapping:
            raise PayrollNotFoundError("Identity mapping", mapping_id)

        staff = self.db.query(StaffMember).filter(StaffMember.id == user_id).first()
        if not staff or staff.role != StaffRole.EMPLOYEE:
            raise PayrollValidationError(
                f"User {user_id} is not an employee on the payroll roster",
                field="user_id",
                code=PayrollErrorCodes.INVALID_DATA_FORMAT,
            )

        mapping.user_id = staff.id
        mapping.status = PayrollIdentityStatus.MANUAL_MATCHED
        mapping.notes = notes
        mapping.last_matched_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(mapping)

        logger.info(
            "Identity mapping %s resolved to user %s", mapping.normalized_payroll_name, user_id
        )
        return mapping

    def upsert_roster_aliases(
        self, alias_map: Dict[str, RosterAlias], chunk_size: Optional[int] = None
    ) -> int:
        """
        Persist roster aliases as MANUAL_MATCHED rows keyed by roster name.

        New rows are bulk inserted in chunks; existing rows are only touched
        when their display name, user or status differs.

        Returns:
            Number of rows created or updated
        """
        chunk_size = chunk_size or settings.payroll_backfill_chunk_size
        now = datetime.utcnow()

        unique_aliases: Dict[str, RosterAlias] = {}
        for alias in alias_map.values():
            unique_aliases.setdefault(normalize_payroll_name(alias.payroll_name), alias)
        if not unique_aliases:
            return 0

        existing_by_key = {
            mapping.normalized_payroll_name: mapping
            for mapping in self.db.query(PayrollIdentityMapping)
            .filter(PayrollIdentityMapping.normalized_payroll_name.in_(list(unique_aliases)))
            .all()
        }

        creates = []
        updated = 0
        for normalized, alias in unique_aliases.items():
            existing = existing_by_key.get(normalized)
            if existing is None:
                creates.append({
                    "normalized_payroll_name": normalized,
                    "display_payroll_name": alias.payroll_name,
                    "user_id": alias.user_id,
                    "status": PayrollIdentityStatus.MANUAL_MATCHED,
                    "last_matched_at": now,
                    "notes": ROSTER_ALIAS_NOTE,
                })
                continue

            unchanged = (
                existing.display_payroll_name == alias.payroll_name
                and existing.user_id == alias.user_id
                and existing.status == PayrollIdentityStatus.MANUAL_MATCHED
            )
            if not unchanged:
                existing.display_payroll_name = alias.payroll_name
                existing.user_id = alias.user_id
                existing.status = PayrollIdentityStatus.MANUAL_MATCHED
                existing.last_matched_at = now
                existing.notes = ROSTER_ALIAS_NOTE
                updated += 1

        created = bulk_insert_chunked(self.db, PayrollIdentityMapping, creates, chunk_size)
        self.db.commit()
        return created + updated

    def mappings_by_normalized_name(self) -> Dict[str, PayrollIdentityMapping]:
        return {
            mapping.normalized_payroll_name: mapping
            for mapping in self.db.query(PayrollIdentityMapping).all()
        }

    def find_blocked_payroll_names(self, period_id: int) -> List[str]:
        """
        Payroll names in a period that cannot be tied to an employee.

        A name is blocked when none of its input rows carries a user and its
        alias is missing, AMBIGUOUS or UNRESOLVED.
        """
        rows = (
            self.db.query(PayrollInputValue.payroll_name, PayrollInputValue.user_id)
            .filter(PayrollInputValue.period_id == period_id)
            .all()
        )
        resolved_names = {row.payroll_name for row in rows if row.user_id is not None}
        candidate_names = sorted({row.payroll_name for row in rows} - resolved_names)
        if not candidate_names:
            return []

        keys = {name: normalize_payroll_name(name) for name in candidate_names}
        mappings = {
            mapping.normalized_payroll_name: mapping
            for mapping in self.db.query(PayrollIdentityMapping)
            .filter(PayrollIdentityMapping.normalized_payroll_name.in_(list(set(keys.values()))))
            .all()
        }

        blocked = []
        for name in candidate_names:
            mapping = mappings.get(keys[name])
            if mapping is None or mapping.status in BLOCKING_STATUSES or mapping.user_id is None:
                blocked.append(name)
        return blocked

    def list_mappings(
        self, status: Optional[PayrollIdentityStatus] = None, limit: int = 200, offset: int = 0
    ) -> List[PayrollIdentityMapping]:
        query = self.db.query(PayrollIdentityMapping)
        if status is not None:
            query = query.filter(PayrollIdentityMapping.status == status)
        return (
            query.order_by(PayrollIdentityMapping.normalized_payroll_name)
            .offset(offset)
            .limit(limit)
            .all()
        )
