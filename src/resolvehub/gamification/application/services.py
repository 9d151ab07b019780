"""
Gamification Application Services
=================================

The scorer credits staff when complaints are resolved or positively
rated by the citizen, and recomputes leaderboard statistics on demand.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from resolvehub.complaints.application.services import (
    IComplaintRepository, IStaffRepository, IEngineConfigProvider, IResolutionListener
)
from resolvehub.complaints.domain import Complaint, Staff
from resolvehub.config import Role, TERMINAL_STATUSES
from resolvehub.gamification.domain import (
    ScoreCalculator, ScoringConfig, StaffStanding, GamificationStats
)
from resolvehub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def aggregate(
    staff_list: Iterable[Staff],
    complaint_history: Iterable[Complaint],
    calculator: Optional[ScoreCalculator] = None
) -> GamificationStats:
    """
    Recompute standings from complaint history.

    Pure and idempotent: points come from re-scoring every resolved or
    closed complaint each staff member owns (resolution plus any feedback
    bonus), not from stored totals.
    """
    calculator = calculator or ScoreCalculator(ScoringConfig())
    staff_list = list(staff_list)
    points: Dict[str, int] = defaultdict(int)
    resolved: Dict[str, int] = defaultdict(int)

    for complaint in complaint_history:
        if not complaint.is_terminal or not complaint.assigned_to:
            continue
        points[complaint.assigned_to] += (
            calculator.points_for(complaint) + calculator.feedback_points_for(complaint)
        )
        resolved[complaint.assigned_to] += 1

    standings = [
        StaffStanding(
            staff_id=staff.id,
            name=staff.name,
            city=staff.city,
            department=staff.department,
            points=points[staff.id],
            resolved_count=resolved[staff.id],
            badge=calculator.badge_for(points[staff.id]),
        )
        for staff in staff_list
    ]
    standings.sort(key=lambda s: (-s.points, -s.resolved_count, s.staff_id))
    for rank, standing in enumerate(standings, start=1):
        standing.rank = rank

    distribution = {badge.name: 0 for badge in calculator.badges}
    for standing in standings:
        if standing.badge is not None:
            distribution[standing.badge.name] += 1

    total_points = sum(s.points for s in standings)
    total_staff = len(standings)

    return GamificationStats(
        total_staff=total_staff,
        total_points=total_points,
        average_points=round(total_points / total_staff, 2) if total_staff else 0.0,
        top_performer=standings[0] if standings else None,
        badge_distribution=distribution,
        available_badges=list(calculator.badges),
        leaderboard=standings,
    )


class GamificationScorer(IResolutionListener):
    """
    Credits staff for resolved complaints and positive citizen feedback.

    The award is stamped on the complaint with a conditional write
    (``points_awarded`` must still be empty), so a complaint is credited
    at most once even if resolution is reported twice. If crediting the
    staff member fails, the stamp is cleared again so a later resolution
    report can retry.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        staff_repository: IStaffRepository,
        config_provider: IEngineConfigProvider
    ):
        self._complaints = complaint_repository
        self._staff = staff_repository
        self._config_provider = config_provider

    @property
    def calculator(self) -> ScoreCalculator:
        return ScoreCalculator(self._config_provider.get_config().scoring)

    async def on_resolved(self, complaint: Complaint, staff: Staff) -> int:
        """
        Award points for a resolved complaint.

        Returns:
            Points awarded (0 when the complaint was already credited or
            the staff record is gone)
        """
        calculator = self.calculator
        points = calculator.points_for(complaint)

        stamped = await self._complaints.update_if(
            complaint.id,
            {"points_awarded": None, "status": [s.value for s in TERMINAL_STATUSES]},
            {"points_awarded": points},
        )
        if not stamped:
            logger.info(
                "Complaint already credited",
                extra={"complaint_id": complaint.id, "staff_id": staff.id}
            )
            return 0

        try:
            updated = await self._staff.add_points(staff.id, points)
        except Exception:
            await self._release_stamp(complaint.id, points)
            raise

        if updated is None:
            logger.warning(
                "Staff record missing while awarding points",
                extra={"complaint_id": complaint.id, "staff_id": staff.id}
            )
            await self._release_stamp(complaint.id, points)
            return 0

        await self._refresh_badge(calculator, updated)
        logger.info(
            "Points awarded",
            extra={
                "complaint_id": complaint.id,
                "staff_id": staff.id,
                "points": points,
                "total_points": updated.points,
                "resolution_streak": updated.resolution_streak
            }
        )
        return points

    async def on_feedback(self, complaint: Complaint, staff: Staff) -> int:
        """
        Award the feedback bonus for a freshly rated complaint.

        The caller records the rating with a conditional write first, so
        this runs once per complaint. Streaks are not touched.
        """
        calculator = self.calculator
        points = calculator.feedback_points_for(complaint)
        if points == 0:
            return 0

        updated = await self._staff.add_points(staff.id, points, streak_increment=0)
        if updated is None:
            logger.warning(
                "Staff record missing while awarding feedback bonus",
                extra={"complaint_id": complaint.id, "staff_id": staff.id}
            )
            return 0

        await self._refresh_badge(calculator, updated)
        logger.info(
            "Feedback bonus awarded",
            extra={
                "complaint_id": complaint.id,
                "staff_id": staff.id,
                "rating": complaint.feedback_rating,
                "points": points,
                "total_points": updated.points
            }
        )
        return points

    async def _release_stamp(self, complaint_id: str, points: int) -> None:
        released = await self._complaints.update_if(
            complaint_id, {"points_awarded": points}, {"points_awarded": None}
        )
        logger.warning(
            "Points award rolled back",
            extra={"complaint_id": complaint_id, "points": points, "released": released}
        )

    async def _refresh_badge(self, calculator: ScoreCalculator, staff: Staff) -> None:
        badge = calculator.badge_for(staff.points)
        badge_name = badge.name if badge else None
        if badge_name != staff.badge:
            await self._staff.set_badge(staff.id, badge_name)
            logger.info(
                "Badge changed",
                extra={"staff_id": staff.id, "badge": badge_name, "points": staff.points}
            )

    async def get_stats(
        self,
        city: Optional[str] = None,
        department: Optional[str] = None
    ) -> GamificationStats:
        """Aggregate statistics for staff, optionally scoped to a city/department."""
        staff_filters = {"role": Role.STAFF.value}
        if city:
            staff_filters["city"] = city
        if department:
            staff_filters["department"] = department

        staff_list = await self._staff.query_by_filter(staff_filters)
        history: List[Complaint] = []
        if staff_list:
            history = await self._complaints.query_by_filter({
                "status": [s.value for s in TERMINAL_STATUSES],
                "assigned_to": [s.id for s in staff_list],
            })
        return aggregate(staff_list, history, self.calculator)

    async def get_leaderboard(
        self,
        limit: int = 10,
        city: Optional[str] = None,
        department: Optional[str] = None
    ) -> List[StaffStanding]:
        stats = await self.get_stats(city=city, department=department)
        return stats.leaderboard[:limit]
