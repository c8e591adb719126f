"""Service layer components."""

from field_service.services.approval_workflow import ApprovalWorkflow
from field_service.services.earnings_calculator import EarningsCalculator
from field_service.services.field_store import FieldStore
from field_service.services.notification_outbox import NotificationOutbox
from field_service.services.photo_gate import PhotoChecklistGate
from field_service.services.registry import Registry
from field_service.services.session_manager import SessionManager
from field_service.services.tariff_manager import TariffManager
from field_service.services.tariff_resolver import TariffResolver
from field_service.services.task_lifecycle import TaskLifecycle

__all__ = [
    "ApprovalWorkflow",
    "EarningsCalculator",
    "FieldStore",
    "NotificationOutbox",
    "PhotoChecklistGate",
    "Registry",
    "SessionManager",
    "TariffManager",
    "TariffResolver",
    "TaskLifecycle",
]
