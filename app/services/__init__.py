"""Lifecycle services.

Each service is constructed with the Flask-SQLAlchemy handle and registered
on the application as ``app.extensions["lifecycle"]``::

    services = current_app.extensions["lifecycle"]
    services.allocator.allocate(member.id)
"""

from dataclasses import dataclass

from app.services.attendance_resolver import AttendanceResolver
from app.services.enrollment import MemberRegistry
from app.services.lifecycle_reporting import LifecycleReporting
from app.services.maintenance_decision import MaintenanceDecisionEngine
from app.services.meeting_schedule import MeetingSchedule
from app.services.member_id_allocator import MemberIdAllocator
from app.services.participation_events import ParticipationEventRecorder
from app.services.period_demotion import PeriodDemotion
from app.services.promotion_eligibility import PromotionEligibilityEvaluator


@dataclass
class LifecycleServices:
    allocator: MemberIdAllocator
    members: MemberRegistry
    evaluator: PromotionEligibilityEvaluator
    resolver: AttendanceResolver
    decisions: MaintenanceDecisionEngine
    meetings: MeetingSchedule
    participation: ParticipationEventRecorder
    reporting: LifecycleReporting
    demotion: PeriodDemotion


def build_services(db, config) -> LifecycleServices:
    allocator = MemberIdAllocator.from_config(db, config)
    evaluator = PromotionEligibilityEvaluator.from_config(db, config)
    resolver = AttendanceResolver(db)
    decisions = MaintenanceDecisionEngine(db, resolver)
    return LifecycleServices(
        allocator=allocator,
        members=MemberRegistry(db, allocator),
        evaluator=evaluator,
        resolver=resolver,
        decisions=decisions,
        meetings=MeetingSchedule(db),
        participation=ParticipationEventRecorder.from_config(db, config),
        reporting=LifecycleReporting(db, evaluator, resolver, decisions),
        demotion=PeriodDemotion(db, resolver, decisions),
    )
