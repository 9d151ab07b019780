"""
Complaint Application Services
==============================

Application services orchestrate the domain services (router, SLA clock,
escalation policy) against the persistence and notification ports.

Every complaint write is an individual conditional update: the repository
applies a patch only if the record still carries the version (and any
guarded fields) it had when it was read. A rejected write is re-read and
retried once; a second rejection surfaces as ConcurrentWriteConflict and
the complaint is picked up again on the next sweep.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from resolvehub.complaints.domain import (
    Complaint, Staff, EscalationRecord, EscalationStep, SLAEvaluation,
    DepartmentRouter, SLAClock, EscalationPolicy, SCOPE_FALLBACK
)
from resolvehub.complaints.domain.value_objects import normalize_key
from resolvehub.config import (
    ComplaintStatus, Department, EscalationLevel, NotificationEvent, Role, settings,
    ACTIVE_STATUSES, TERMINAL_STATUSES,
    LOW_FEEDBACK_RATING, MAX_FEEDBACK_RATING, MIN_FEEDBACK_RATING
)
from resolvehub.config.engine import EngineConfig
from resolvehub.core import (
    ConcurrentWriteConflict, DomainException, NoEligibleStaffException,
    PersistenceUnavailableException, ResourceNotFoundException, ValidationException
)
from resolvehub.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IComplaintRepository(ABC):
    """
    Interface for complaint persistence.

    Filters map persisted field names to a value (equality), a list
    (membership; a ``None`` member also matches NULL) or ``None`` (IS NULL).
    """

    @abstractmethod
    async def query_by_filter(self, filters: dict) -> List[Complaint]:
        """List complaints matching all filters."""

    @abstractmethod
    async def find_one(self, filters: dict) -> Optional[Complaint]:
        """Get the first complaint matching the filters."""

    @abstractmethod
    async def get_by_id(self, complaint_id: str) -> Optional[Complaint]:
        """Get complaint by ID."""

    @abstractmethod
    async def create(self, complaint: Complaint) -> Complaint:
        """Persist a new complaint."""

    @abstractmethod
    async def update_if(self, complaint_id: str, expected: dict, patch: dict) -> bool:
        """
        Apply ``patch`` only if the stored record matches ``expected``.

        Bumps the version on success. Returns False when the guard fails.
        """


class IStaffRepository(ABC):
    """Interface for staff identity and gamification counters."""

    @abstractmethod
    async def query_by_filter(self, filters: dict) -> List[Staff]:
        """List staff matching all filters."""

    @abstractmethod
    async def find_one(self, filters: dict) -> Optional[Staff]:
        """Get the first staff member matching the filters, ordered by id."""

    @abstractmethod
    async def get_by_id(self, staff_id: str) -> Optional[Staff]:
        """Get staff by ID."""

    @abstractmethod
    async def add_points(self, staff_id: str, points: int, streak_increment: int = 1) -> Optional[Staff]:
        """Atomically increment points and streak; returns the updated record."""

    @abstractmethod
    async def set_badge(self, staff_id: str, badge: Optional[str]) -> None:
        """Store the staff member's active badge."""


class INotificationDispatcher(ABC):
    """Interface for outbound notifications."""

    @abstractmethod
    async def send(self, recipient: str, event_type: str, payload: dict) -> bool:
        """Deliver an event; True when accepted."""


class IEngineConfigProvider(ABC):
    """Interface for engine configuration access."""

    @abstractmethod
    def get_config(self) -> EngineConfig:
        """Get current engine configuration."""


class IResolutionListener(ABC):
    """Receives resolved and rated complaints (implemented by gamification)."""

    @abstractmethod
    async def on_resolved(self, complaint: Complaint, staff: Staff) -> int:
        """Handle a resolved complaint; returns points awarded."""

    @abstractmethod
    async def on_feedback(self, complaint: Complaint, staff: Staff) -> int:
        """Handle freshly recorded citizen feedback; returns points awarded."""


# ========== Shared helpers ==========

Mutation = Callable[[Complaint], Awaitable[bool]]


class ConditionalWriter:
    """
    Applies an async mutation to a complaint and persists the difference
    with a conditional update.

    The mutation receives a working copy and returns False to abandon the
    write (for example when a re-read shows the complaint no longer
    qualifies). Only changed fields are sent in the patch.
    """

    def __init__(self, repository: IComplaintRepository, max_attempts: int = 2):
        self._repo = repository
        self._max_attempts = max_attempts

    async def apply(
        self,
        complaint: Complaint,
        mutate: Mutation,
        guard_fields: Sequence[str] = ()
    ) -> Optional[Complaint]:
        """
        Returns:
            The updated complaint, the unchanged complaint when there was
            nothing to write, or None when the mutation declined.

        Raises:
            ConcurrentWriteConflict: when every attempt was rejected
        """
        current = complaint
        for attempt in range(1, self._max_attempts + 1):
            before = current.to_record()
            working = copy.deepcopy(current)
            if not await mutate(working):
                return None

            after = working.to_record()
            patch = {k: v for k, v in after.items() if k != "version" and before.get(k) != v}
            if not patch:
                return working

            expected = {"version": current.version}
            expected.update({f: before[f] for f in guard_fields})

            if await self._repo.update_if(current.id, expected, patch):
                working.version = current.version + 1
                return working

            logger.info(
                "Conditional write rejected",
                extra={"complaint_id": current.id, "attempt": attempt}
            )
            if attempt < self._max_attempts:
                refreshed = await self._repo.get_by_id(current.id)
                if refreshed is None:
                    return None
                current = refreshed

        raise ConcurrentWriteConflict(complaint.id)


async def dispatch_notification(
    notifier: Optional[INotificationDispatcher],
    recipient: Optional[str],
    event_type: str,
    payload: dict
) -> bool:
    """
    Fire-and-forget delivery: failures are logged, never raised, and never
    touch complaint state that has already been written.
    """
    if notifier is None or not recipient:
        return False
    try:
        delivered = await notifier.send(recipient, event_type, payload)
    except Exception as e:
        logger.error(
            "Notification failed",
            extra={
                "recipient": recipient,
                "event_type": event_type,
                "error": str(e),
                "error_type": "NotificationFailure"
            }
        )
        return False

    if not delivered:
        logger.warning(
            "Notification not delivered",
            extra={"recipient": recipient, "event_type": event_type}
        )
    return delivered


class BackgroundNotificationDispatcher(INotificationDispatcher):
    """
    Queues each delivery on its own task so callers (the sweep above all)
    never wait on webhook retries. Delivery failures are logged by
    ``dispatch_notification`` inside the task.
    """

    def __init__(self, notifier: INotificationDispatcher):
        self._notifier = notifier
        self._pending: Set["asyncio.Task[bool]"] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def send(self, recipient: str, event_type: str, payload: dict) -> bool:
        """Schedule delivery; True means queued, not delivered."""
        task = asyncio.create_task(
            dispatch_notification(self._notifier, recipient, event_type, payload)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def drain(self) -> None:
        """Wait for every queued delivery, including ones queued meanwhile."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _complaint_payload(complaint: Complaint, **extra) -> dict:
    payload = {
        "complaint_id": complaint.id,
        "title": complaint.title,
        "category": complaint.category,
        "department": complaint.department,
        "city": complaint.city,
        "status": complaint.status.value,
        "deadline": complaint.sla.deadline.isoformat() if complaint.sla.deadline else None,
    }
    payload.update(extra)
    return payload


# ========== Department routing ==========

@dataclass
class CorrectionResult:
    """Outcome of a department correction pass."""
    scanned: int = 0
    corrected: int = 0
    unresolved: int = 0
    conflicts: int = 0


class DepartmentRoutingService:
    """Routes categories and repairs complaints that lack a department."""

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        config_provider: IEngineConfigProvider
    ):
        self._repo = complaint_repository
        self._config_provider = config_provider
        self._writer = ConditionalWriter(complaint_repository)

    @property
    def router(self) -> DepartmentRouter:
        return DepartmentRouter(self._config_provider.get_config().departments)

    def resolve(self, category: Optional[str]) -> Department:
        """Resolve a category; unknown categories become Unassigned."""
        return self.router.resolve(category)

    async def correct_missing_departments(self) -> CorrectionResult:
        """
        Fill in departments that are null, empty or absent.

        Complaints with any non-empty department (including manual
        overrides and the Unassigned sentinel) are never touched, so
        running the pass again changes nothing.
        """
        router = self.router
        result = CorrectionResult()

        candidates = await self._repo.query_by_filter({"department": [None, ""]})
        result.scanned = len(candidates)

        for complaint in candidates:
            if not router.is_known(complaint.category):
                result.unresolved += 1
                logger.warning(
                    "No department mapping during correction",
                    extra={
                        "complaint_id": complaint.id,
                        "category": complaint.category,
                        "error_type": "UnknownCategory"
                    }
                )
                continue

            department = router.resolve(complaint.category)

            async def fill(working: Complaint, department=department) -> bool:
                if working.has_department:
                    return False
                working.department = department.value
                return True

            try:
                updated = await self._writer.apply(complaint, fill, guard_fields=("department",))
            except ConcurrentWriteConflict:
                result.conflicts += 1
                continue

            if updated is not None and updated.department == department.value:
                result.corrected += 1
                logger.info(
                    "Department corrected",
                    extra={
                        "complaint_id": complaint.id,
                        "category": complaint.category,
                        "department": department.value
                    }
                )

        logger.info(
            "Department correction complete",
            extra={
                "scanned": result.scanned,
                "corrected": result.corrected,
                "unresolved": result.unresolved,
                "conflicts": result.conflicts
            }
        )
        return result


# ========== Assignment ==========

@dataclass
class AssignmentResult:
    """Outcome of an assignment run for one scope."""
    updated_count: int = 0
    staff_id: Optional[str] = None
    no_eligible_staff: bool = False
    conflicts: int = 0


class AssignmentResolver:
    """
    Binds eligible staff to complaints and resolves escalation authorities.

    Candidate selection is deterministic: fewest open complaints owned,
    then lowest staff id.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        staff_repository: IStaffRepository,
        config_provider: IEngineConfigProvider,
        notifier: Optional[INotificationDispatcher] = None,
        global_city: Optional[str] = None
    ):
        self._complaints = complaint_repository
        self._staff = staff_repository
        self._config_provider = config_provider
        self._notifier = notifier
        self._global_city = global_city or settings.global_city
        self._writer = ConditionalWriter(complaint_repository)

    async def eligible_staff(self, city: str, department: str) -> List[Staff]:
        """All staff allowed to own complaints in the scope."""
        candidates = await self._staff.query_by_filter({
            "role": Role.STAFF.value,
            "city": city,
            "department": department,
        })
        return [s for s in candidates if s.is_eligible_for(city, department)]

    async def select_staff(self, city: str, department: str) -> Staff:
        """
        Pick one eligible staff member.

        Raises:
            NoEligibleStaffException: when the scope has no staff
        """
        candidates = await self.eligible_staff(city, department)
        return await self._least_loaded(candidates, city, department)

    async def _least_loaded(self, candidates: List[Staff], city: str, department: str) -> Staff:
        if not candidates:
            raise NoEligibleStaffException(city, department)

        open_owned = await self._complaints.query_by_filter({
            "status": [s.value for s in ACTIVE_STATUSES],
            "assigned_to": [c.id for c in candidates],
        })
        load: Dict[str, int] = {c.id: 0 for c in candidates}
        for complaint in open_owned:
            load[complaint.assigned_to] = load.get(complaint.assigned_to, 0) + 1

        return min(candidates, key=lambda s: (load[s.id], s.id))

    async def assign(
        self,
        city: str,
        department: str,
        status_filter: Iterable[ComplaintStatus] = tuple(ACTIVE_STATUSES)
    ) -> AssignmentResult:
        """
        Bind a staff member to every complaint in the scope that is not
        already owned by an eligible staff member.

        A scope without eligible staff is a no-op flagged with
        ``no_eligible_staff``; the next call retries.
        """
        result = AssignmentResult()
        statuses = [ComplaintStatus(s).value for s in status_filter]

        candidates = await self.eligible_staff(city, department)
        try:
            staff = await self._least_loaded(candidates, city, department)
        except NoEligibleStaffException as e:
            result.no_eligible_staff = True
            logger.warning(
                "No eligible staff for assignment",
                extra={"city": city, "department": department, "error": e.message,
                       "error_type": "NoEligibleStaff"}
            )
            return result

        result.staff_id = staff.id
        eligible_ids = {c.id for c in candidates}

        complaints = await self._complaints.query_by_filter({
            "city": city,
            "department": department,
            "status": statuses,
        })

        async def bind(working: Complaint) -> bool:
            if (working.city != city or working.department != department
                    or working.status.value not in statuses):
                return False
            if working.assigned_to in eligible_ids:
                # Keep the existing owner; just make sure access is recorded
                working.grant_access(working.assigned_to)
                return True
            working.assign_owner(staff.id)
            return True

        for complaint in complaints:
            previous_owner = complaint.assigned_to
            try:
                updated = await self._writer.apply(
                    complaint, bind, guard_fields=("city", "department", "status")
                )
            except ConcurrentWriteConflict:
                result.conflicts += 1
                logger.warning(
                    "Assignment deferred after concurrent write",
                    extra={"complaint_id": complaint.id, "error_type": "ConcurrentWriteConflict"}
                )
                continue

            if updated is None or updated.version == complaint.version:
                continue
            result.updated_count += 1

            if updated.assigned_to != previous_owner:
                logger.info(
                    "Complaint assigned",
                    extra={"complaint_id": updated.id, "staff_id": updated.assigned_to}
                )
                await dispatch_notification(
                    self._notifier, updated.assigned_to, NotificationEvent.ASSIGNED,
                    _complaint_payload(updated)
                )

        return result

    async def find_authority(
        self,
        level: int,
        city: str,
        department: Optional[str]
    ) -> Optional[Staff]:
        """
        Resolve the escalation target for a level.

        Searches the configured scope first, then broader scopes
        (department -> city -> global).
        """
        authority = self._config_provider.get_config().escalation.authority_for(int(level))

        for scope in SCOPE_FALLBACK[authority.scope]:
            filters = {"role": authority.role.value}
            if scope == "department":
                if not department:
                    continue
                filters.update({"city": city, "department": department})
            elif scope == "city":
                filters["city"] = city
            else:
                filters["city"] = self._global_city

            target = await self._staff.find_one(filters)
            if target is not None:
                return target

        logger.warning(
            "No escalation target found",
            extra={
                "level": int(level),
                "city": city,
                "department": department,
                "error_type": "NoEligibleStaff"
            }
        )
        return None


# ========== Escalation ==========

class EscalationEngine:
    """
    Advances a complaint's escalation level by at most one tier.

    Works on a complaint copy handed in by the sweep; the caller persists.
    """

    def __init__(
        self,
        resolver: AssignmentResolver,
        config_provider: IEngineConfigProvider
    ):
        self._resolver = resolver
        self._config_provider = config_provider

    @property
    def policy(self) -> EscalationPolicy:
        return EscalationPolicy(self._config_provider.get_config().escalation)

    async def advance(
        self,
        complaint: Complaint,
        evaluation: SLAEvaluation,
        now: datetime
    ) -> Tuple[Optional[EscalationStep], Optional[Staff]]:
        """
        Apply the next escalation step to ``complaint`` if one is due.

        Returns:
            (step, target); step is None when the level holds
        """
        step = self.policy.decide(complaint, evaluation)
        if step is None:
            return None, None

        target = await self._resolver.find_authority(
            step.to_level, complaint.city, complaint.department
        )
        complaint.escalation = EscalationRecord(
            level=step.to_level,
            escalated_at=now,
            escalation_reason=step.reason,
            escalated_to=target.id if target else None,
        )
        if target is not None:
            complaint.grant_access(target.id)
        return step, target


# ========== Sweep ==========

@dataclass
class SweepSummary:
    """Counters for one sweep."""
    started_at: datetime
    evaluated: int = 0
    breached: int = 0
    escalated: int = 0
    assigned: int = 0
    deferred: int = 0
    failed: int = 0
    skipped: bool = False
    aborted: bool = False
    error: Optional[str] = None
    escalations: List[dict] = field(default_factory=list)


class SweepService:
    """
    One pass over every open complaint: SLA evaluation, then escalation,
    persisted complaint by complaint.

    Ticks never overlap; a tick that arrives while another is running is
    skipped rather than queued.
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        resolver: AssignmentResolver,
        escalation_engine: EscalationEngine,
        config_provider: IEngineConfigProvider,
        notifier: Optional[INotificationDispatcher] = None
    ):
        self._repo = complaint_repository
        self._resolver = resolver
        self._escalation = escalation_engine
        self._config_provider = config_provider
        self._notifier = notifier
        self._writer = ConditionalWriter(complaint_repository)
        self._lock = asyncio.Lock()
        self.last_summary: Optional[SweepSummary] = None

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def tick(self, now: datetime) -> SweepSummary:
        """Run one sweep at ``now``."""
        if self._lock.locked():
            logger.warning("SLA sweep already running, skipping tick", extra={"now": now.isoformat()})
            return SweepSummary(started_at=now, skipped=True)

        async with self._lock:
            with log_latency(logger, "sla_sweep"):
                summary = await self._run(now)
            self.last_summary = summary
            logger.info(
                "SLA sweep finished",
                extra={
                    "evaluated": summary.evaluated,
                    "breached": summary.breached,
                    "escalated": summary.escalated,
                    "assigned": summary.assigned,
                    "deferred": summary.deferred,
                    "failed": summary.failed,
                    "aborted": summary.aborted
                }
            )
            return summary

    async def _run(self, now: datetime) -> SweepSummary:
        summary = SweepSummary(started_at=now)
        active_filter = {"status": [s.value for s in ACTIVE_STATUSES]}

        try:
            complaints = await self._repo.query_by_filter(active_filter)
            if await self._retry_assignments(complaints, summary):
                complaints = await self._repo.query_by_filter(active_filter)
        except PersistenceUnavailableException as e:
            return self._abort(summary, e)

        clock = SLAClock(self._config_provider.get_config().sla)

        for complaint in complaints:
            try:
                await self._process(complaint, now, clock, summary)
            except ConcurrentWriteConflict:
                summary.deferred += 1
                logger.warning(
                    "Complaint deferred to next sweep",
                    extra={"complaint_id": complaint.id, "error_type": "ConcurrentWriteConflict"}
                )
            except PersistenceUnavailableException as e:
                return self._abort(summary, e)
            except Exception as e:
                summary.failed += 1
                logger.exception(
                    "Failed to evaluate complaint",
                    extra={"complaint_id": complaint.id, "error": str(e)}
                )

        return summary

    def _abort(self, summary: SweepSummary, error: Exception) -> SweepSummary:
        summary.aborted = True
        summary.error = str(error)
        logger.error(
            "SLA sweep aborted, persistence unavailable",
            extra={"error": str(error), "error_type": "PersistenceUnavailable"}
        )
        return summary

    async def _retry_assignments(self, complaints: List[Complaint], summary: SweepSummary) -> bool:
        """Re-run assignment for routed scopes that still have unowned complaints."""
        scopes = sorted({
            (c.city, c.department) for c in complaints
            if c.is_routed and not c.assigned_to
        })
        for city, department in scopes:
            try:
                result = await self._resolver.assign(city, department, ACTIVE_STATUSES)
            except PersistenceUnavailableException:
                raise
            except Exception as e:
                logger.exception(
                    "Assignment retry failed",
                    extra={"city": city, "department": department, "error": str(e)}
                )
                continue
            summary.assigned += result.updated_count
        return summary.assigned > 0

    async def _process(
        self,
        complaint: Complaint,
        now: datetime,
        clock: SLAClock,
        summary: SweepSummary
    ) -> None:
        outcome: dict = {}

        async def evaluate_and_escalate(working: Complaint) -> bool:
            outcome.clear()
            if not working.is_active:
                return False

            evaluation = clock.evaluate(working, now)
            working.sla.deadline = evaluation.deadline
            working.sla.breached_at = evaluation.breached_at
            working.sla.time_remaining_seconds = evaluation.time_remaining_seconds
            working.sla.evaluated_at = now

            step, target = await self._escalation.advance(working, evaluation, now)
            outcome.update(evaluation=evaluation, step=step, target=target)
            return True

        updated = await self._writer.apply(complaint, evaluate_and_escalate)
        if updated is None:
            return

        summary.evaluated += 1
        evaluation: SLAEvaluation = outcome["evaluation"]
        step: Optional[EscalationStep] = outcome["step"]
        target: Optional[Staff] = outcome["target"]

        if evaluation.newly_breached:
            summary.breached += 1
            logger.warning(
                "SLA breached",
                extra={"complaint_id": updated.id, "deadline": evaluation.deadline.isoformat()}
            )

        if step is None:
            return

        summary.escalated += 1
        summary.escalations.append({
            "complaint_id": updated.id,
            "from_level": int(step.from_level),
            "to_level": int(step.to_level),
            "reason": step.reason,
            "escalated_to": target.id if target else None,
        })
        logger.info(
            "Complaint escalated",
            extra={
                "complaint_id": updated.id,
                "from_level": int(step.from_level),
                "to_level": int(step.to_level),
                "reason": step.reason,
                "escalated_to": target.id if target else None
            }
        )

        payload = _complaint_payload(
            updated,
            level=int(step.to_level),
            reason=step.reason,
            time_remaining_seconds=evaluation.time_remaining_seconds,
        )
        if target is not None:
            await dispatch_notification(self._notifier, target.id, NotificationEvent.ESCALATED, payload)
        if updated.assigned_to and updated.assigned_to != (target.id if target else None):
            await dispatch_notification(self._notifier, updated.assigned_to, NotificationEvent.ESCALATED, payload)


# ========== Complaint lifecycle & read model ==========

@dataclass
class ComplaintSLAView:
    """Read model combining SLA facts and escalation state."""
    complaint: Complaint
    evaluation: SLAEvaluation
    escalated_to: Optional[Staff] = None


class ComplaintService:
    """
    Complaint intake, forward status transitions and the SLA read model.

    Intake routes the category, computes the deadline and binds staff.
    Resolution freezes SLA/escalation and hands the complaint to the
    resolution listener (the gamification scorer).
    """

    def __init__(
        self,
        complaint_repository: IComplaintRepository,
        staff_repository: IStaffRepository,
        routing_service: DepartmentRoutingService,
        resolver: AssignmentResolver,
        config_provider: IEngineConfigProvider,
        notifier: Optional[INotificationDispatcher] = None,
        resolution_listener: Optional[IResolutionListener] = None
    ):
        self._repo = complaint_repository
        self._staff = staff_repository
        self._routing = routing_service
        self._resolver = resolver
        self._config_provider = config_provider
        self._notifier = notifier
        self._resolution_listener = resolution_listener
        self._writer = ConditionalWriter(complaint_repository)

    def _clock(self) -> SLAClock:
        return SLAClock(self._config_provider.get_config().sla)

    def evaluate(self, complaint: Complaint, now: datetime) -> SLAEvaluation:
        """Read-only SLA evaluation with the current configuration."""
        return self._clock().evaluate(complaint, now)

    async def get(self, complaint_id: str) -> Complaint:
        complaint = await self._repo.get_by_id(complaint_id)
        if complaint is None:
            raise ResourceNotFoundException("Complaint", complaint_id)
        return complaint

    async def register(self, complaint: Complaint) -> Complaint:
        """
        Register a newly filed complaint.

        A department already present on the complaint (manual override) is
        kept; otherwise the router decides.
        """
        known = self._config_provider.get_config().sla.known_priorities()
        priority = normalize_key(complaint.priority)
        if priority not in known:
            raise ValidationException(
                f"Unknown priority {complaint.priority!r}",
                {"priority": complaint.priority, "allowed": sorted(known)}
            )
        complaint.priority = priority

        if not complaint.has_department:
            department = self._routing.resolve(complaint.category)
            complaint.department = department.value
            complaint.flagged_for_review = department == Department.UNASSIGNED

        complaint.sla.deadline = self._clock().deadline(complaint)
        complaint.sla.time_remaining_seconds = (
            complaint.sla.deadline - complaint.created_at
        ).total_seconds()
        complaint.sla.evaluated_at = complaint.created_at

        created = await self._repo.create(complaint)
        logger.info(
            "Complaint registered",
            extra={
                "complaint_id": created.id,
                "department": created.department,
                "deadline": created.sla.deadline.isoformat(),
                "flagged_for_review": created.flagged_for_review
            }
        )

        if created.is_routed:
            await self._resolver.assign(created.city, created.department, ACTIVE_STATUSES)
            created = await self._repo.get_by_id(created.id) or created
        return created

    async def update_status(
        self,
        complaint_id: str,
        status: ComplaintStatus,
        now: datetime
    ) -> Complaint:
        """
        Move a complaint forward.

        Entering a terminal status takes one last SLA evaluation and freezes
        it. The first terminal transition credits the owner.

        Raises:
            ResourceNotFoundException, InvalidStatusTransitionException,
            ConcurrentWriteConflict
        """
        complaint = await self.get(complaint_id)
        clock = self._clock()
        was_terminal = complaint.is_terminal

        async def transition(working: Complaint) -> bool:
            if working.is_active and status in TERMINAL_STATUSES:
                evaluation = clock.evaluate(working, now)
                working.sla.deadline = evaluation.deadline
                working.sla.breached_at = evaluation.breached_at
                working.sla.time_remaining_seconds = evaluation.time_remaining_seconds
                working.sla.evaluated_at = now
            working.transition_to(status, now)
            return True

        updated = await self._writer.apply(complaint, transition, guard_fields=("status",))
        if updated is None:
            raise ResourceNotFoundException("Complaint", complaint_id)
        logger.info(
            "Complaint status changed",
            extra={
                "complaint_id": updated.id,
                "from_status": complaint.status.value,
                "to_status": updated.status.value
            }
        )

        await dispatch_notification(
            self._notifier, updated.submitted_by, NotificationEvent.STATUS_CHANGED,
            _complaint_payload(updated, previous_status=complaint.status.value)
        )

        if not was_terminal and updated.is_terminal:
            await self._credit_resolution(updated)
            updated = await self._repo.get_by_id(updated.id) or updated
        return updated

    async def _credit_resolution(self, complaint: Complaint) -> None:
        if self._resolution_listener is None or not complaint.assigned_to:
            return
        staff = await self._staff.get_by_id(complaint.assigned_to)
        if staff is None:
            logger.warning(
                "Resolved complaint owner not found",
                extra={"complaint_id": complaint.id, "staff_id": complaint.assigned_to}
            )
            return
        try:
            await self._resolution_listener.on_resolved(complaint, staff)
        except Exception as e:
            # Scoring is best-effort; the status change is already committed
            logger.exception(
                "Resolution scoring failed",
                extra={"complaint_id": complaint.id, "staff_id": staff.id, "error": str(e)}
            )

    async def record_feedback(
        self,
        complaint_id: str,
        rating: int,
        comment: Optional[str] = None
    ) -> Complaint:
        """
        Record the citizen's rating of a resolved or closed complaint.

        Feedback is accepted once per complaint: the write is guarded on
        ``feedback_rating`` still being empty. A positive rating credits
        the owner with the feedback bonus; a low one alerts the final
        escalation authority.

        Raises:
            ValidationException: rating outside the accepted range
            DomainException: complaint not finished yet, or already rated
        """
        if not MIN_FEEDBACK_RATING <= rating <= MAX_FEEDBACK_RATING:
            raise ValidationException(
                f"Rating must be between {MIN_FEEDBACK_RATING} and {MAX_FEEDBACK_RATING}",
                {"rating": rating}
            )
        complaint = await self.get(complaint_id)
        if not complaint.is_terminal:
            raise DomainException(
                f"Complaint {complaint_id} is not resolved yet",
                {"complaint_id": complaint_id, "status": complaint.status.value}
            )

        async def rate(working: Complaint) -> bool:
            if working.feedback_rating is not None:
                raise DomainException(
                    f"Feedback has already been recorded for complaint {complaint_id}",
                    {"complaint_id": complaint_id, "rating": working.feedback_rating}
                )
            working.feedback_rating = rating
            working.feedback_comment = comment or None
            return True

        updated = await self._writer.apply(complaint, rate, guard_fields=("feedback_rating",))
        if updated is None:
            raise ResourceNotFoundException("Complaint", complaint_id)
        logger.info(
            "Feedback recorded",
            extra={"complaint_id": updated.id, "rating": rating, "staff_id": updated.assigned_to}
        )

        await self._credit_feedback(updated)
        if rating <= LOW_FEEDBACK_RATING:
            authority = await self._resolver.find_authority(
                EscalationLevel.FINAL, updated.city, updated.department
            )
            await dispatch_notification(
                self._notifier, authority.id if authority else None,
                NotificationEvent.LOW_FEEDBACK,
                _complaint_payload(updated, rating=rating, comment=updated.feedback_comment)
            )
        return updated

    async def _credit_feedback(self, complaint: Complaint) -> None:
        if self._resolution_listener is None or not complaint.assigned_to:
            return
        staff = await self._staff.get_by_id(complaint.assigned_to)
        if staff is None:
            logger.warning(
                "Rated complaint owner not found",
                extra={"complaint_id": complaint.id, "staff_id": complaint.assigned_to}
            )
            return
        try:
            await self._resolution_listener.on_feedback(complaint, staff)
        except Exception as e:
            # The rating is committed; aggregated standings still count the bonus
            logger.exception(
                "Feedback scoring failed",
                extra={"complaint_id": complaint.id, "staff_id": staff.id, "error": str(e)}
            )

    async def get_sla_view(self, complaint_id: str, now: datetime) -> ComplaintSLAView:
        """Compute the SLA read model at ``now`` without persisting anything."""
        complaint = await self.get(complaint_id)
        evaluation = self.evaluate(complaint, now)
        escalated_to = None
        if complaint.escalation.escalated_to:
            escalated_to = await self._staff.get_by_id(complaint.escalation.escalated_to)
        return ComplaintSLAView(complaint=complaint, evaluation=evaluation, escalated_to=escalated_to)
