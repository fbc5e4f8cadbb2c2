"""
Jurisdiction lock for county selection.

An operator holding "{module}.manage.county" who is not a super admin is
confined to their home county: the guard auto-selects it once the county list
is available and rejects every attempt to pick any other county.
"""

import logging
from typing import Optional

from field_geo.config import ScopeConfig
from models.geography import HierarchyLevel
from models.permissions import OperatorContext
from resolution.errors import ErrorKind, InvalidSelectionError, ScopeViolation
from resolution.events import NotificationSink, WarningEvent


logger = logging.getLogger(__name__)

SCOPE_VIOLATION_MESSAGE = "You are only allowed to manage your assigned county."


class ScopeGuard:
    """Restricts county selection to the operator's jurisdiction."""

    def __init__(
        self,
        operator: OperatorContext,
        notifications: Optional[NotificationSink] = None,
        config: Optional[ScopeConfig] = None,
    ):
        self.operator = operator
        self.notifications = notifications if notifications is not None else NotificationSink()
        self.config = config or ScopeConfig()
        self.resolver = None
        self._auto_applied = False
        self._unsubscribe = None

    @property
    def home_county(self) -> Optional[str]:
        return self.operator.home_county

    @property
    def auto_applied(self) -> bool:
        return self._auto_applied

    def is_locked(self) -> bool:
        return self.operator.has_permission(self.config.county_permission) and not self.operator.is_super_admin

    def authorize(self, county_name: Optional[str]) -> None:
        """
        Raise ScopeViolation unless county_name is allowed.

        A locked operator without a known home county may not select any county.
        """
        if not self.is_locked():
            return
        if county_name is not None and self.home_county and _same(county_name, self.home_county):
            return
        raise ScopeViolation(
            SCOPE_VIOLATION_MESSAGE,
            attempted=county_name,
            home_county=self.home_county,
        )

    def check_county(self, county_name: Optional[str]) -> bool:
        """Authorize, publishing one warning event on rejection."""
        try:
            self.authorize(county_name)
        except ScopeViolation as e:
            logger.info(f"Rejected county {e.attempted!r} for operator locked to {e.home_county!r}")
            self.notifications.publish(WarningEvent(message=str(e), kind=ErrorKind.SCOPE_VIOLATION))
            return False
        return True

    def attach(self, resolver) -> None:
        """Vet the resolver's county selections and watch its county list."""
        self.resolver = resolver
        resolver.scope_guard = self
        self._unsubscribe = resolver.subscribe(self._on_change)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.resolver is not None and self.resolver.scope_guard is self:
            self.resolver.scope_guard = None
        self.resolver = None

    def apply_auto_lock(self) -> bool:
        """
        Select the home county once, if locked and nothing is selected yet.

        Returns True when the lock was applied by this call. When the home
        county is not (yet) in the county list, nothing changes and the next
        county-list update retries.
        """
        if self._auto_applied or self.resolver is None or not self.is_locked():
            return False
        if not self.home_county or self.resolver.selection.county is not None:
            return False

        match = next((c for c in self.resolver.counties if _same(c.name, self.home_county)), None)
        if match is None:
            logger.debug(f"Home county {self.home_county!r} not in county list yet")
            return False

        self._auto_applied = True
        try:
            self.resolver.choose(HierarchyLevel.COUNTY, match)
        except InvalidSelectionError:
            self._auto_applied = False
            raise
        logger.info(f"Locked selection to home county {match.name}")
        return True

    def _on_change(self, level: HierarchyLevel) -> None:
        if level == HierarchyLevel.COUNTY and not self._auto_applied:
            self.apply_auto_lock()


def _same(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()
