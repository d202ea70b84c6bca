"""Test doubles and factories for bulk job tests.

RecordingGateway stands in for GatewayClient: it records every send in
order and replays scripted results, so tests can assert exactly which
items were sent and in which order.
"""

import threading
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import uuid4

from bulk_messenger.domain.models import (
    BulkJob,
    GatewayInstance,
    JobItem,
    JobStatus,
    MessageTemplate,
    ProfileData,
    TemplateType,
)
from bulk_messenger.gateway.models import SendResult
from bulk_messenger.persistence.store import JobStore
from bulk_messenger.utils.timestamps import utc_now

OWNER = "seller-1"
OTHER_OWNER = "seller-2"
INSTANCE = "loja-centro"
TODAY = date(2026, 1, 10)

ScriptedResult = Union[SendResult, Exception, Callable[[str, str], SendResult]]


def fixed_today() -> date:
    return TODAY


@dataclass
class SentMessage:
    instance: str
    number: str
    text: str


class RecordingGateway:
    """Fake gateway client recording calls and replaying scripted results.

    Unscripted sends succeed. A scripted Exception is raised from send_text,
    which the real client never does; tests use it to simulate a fault.
    """

    def __init__(
        self,
        results: Optional[List[ScriptedResult]] = None,
        configured: bool = True,
        connected: bool = True,
    ):
        self.calls: List[SentMessage] = []
        self.connection_checks: List[str] = []
        self.is_configured = configured
        self.connected = connected
        self._results = list(results or [])
        self._lock = threading.Lock()

    def send_text(self, instance: str, number: str, text: str) -> SendResult:
        with self._lock:
            self.calls.append(SentMessage(instance, number, text))
            result = self._results.pop(0) if self._results else None
            call_number = len(self.calls)

        if result is None:
            return SendResult(
                success=True, attempts=1, status_code=200, message_id=f"msg-{call_number}"
            )
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(number, text)
        return result

    def is_connected(self, instance: str) -> bool:
        self.connection_checks.append(instance)
        return self.connected

    @property
    def numbers(self) -> List[str]:
        return [call.number for call in self.calls]


def failed(error: str = "HTTP 400: bad request", status_code: int = 400) -> SendResult:
    return SendResult(success=False, attempts=1, status_code=status_code, error=error)


def make_item(n: int, days_left: int = 10, **overrides: Any) -> Dict[str, Any]:
    """Build an item dict; phone numbers end in the item number so order is visible."""
    item = {
        "id": f"cust-{n}",
        "name": f"Cliente {n}",
        "phone": f"(11) 98765-{4300 + n:04d}",
        "category": "iptv",
        "expiration_date": (TODAY + timedelta(days=days_left)).isoformat(),
        "plan_name": "Mensal",
        "plan_price": 35,
    }
    item.update(overrides)
    return item


def expected_number(n: int) -> str:
    return f"551198765{4300 + n:04d}"


def make_items(count: int, **overrides: Any) -> List[Dict[str, Any]]:
    return [make_item(n, **overrides) for n in range(1, count + 1)]


DEFAULT_TEMPLATES = {
    TemplateType.EXPIRED: "Olá {nome}, seu plano {plano} venceu em {vencimento}. Pix: {pix}",
    TemplateType.EXPIRING_SOON: "Olá {nome}, seu {servico} vence em {dias_restantes} dias.",
    TemplateType.BILLING: "Olá {nome}, sua fatura de R$ {valor} da {empresa} vence em {vencimento}.",
}


def seed_owner(
    store: JobStore,
    owner_id: str = OWNER,
    connected: bool = True,
    templates: Optional[Dict[TemplateType, str]] = None,
    template_name: str = "IPTV padrão",
    country_code: Optional[str] = None,
) -> None:
    """Register a gateway instance and one template per bucket for an owner."""
    store.save_gateway_instance(
        GatewayInstance(
            owner_id=owner_id,
            instance_name=INSTANCE,
            is_connected=connected,
            country_code=country_code,
        )
    )
    for template_type, message in (DEFAULT_TEMPLATES if templates is None else templates).items():
        store.save_template(
            MessageTemplate(
                owner_id=owner_id,
                name=template_name,
                template_type=template_type,
                message=message,
            )
        )


def create_job(
    store: JobStore,
    items: List[Dict[str, Any]],
    owner_id: str = OWNER,
    status: JobStatus = JobStatus.PENDING,
    pace_seconds: int = 0,
    current_index: int = 0,
    profile: Optional[Dict[str, Any]] = None,
    created_at=None,
) -> BulkJob:
    """Insert a job directly through the store, bypassing the service."""
    now = created_at or utc_now()
    job = BulkJob(
        id=uuid4().hex,
        owner_id=owner_id,
        status=status,
        total_items=len(items),
        processed_count=current_index,
        success_count=current_index,
        current_index=current_index,
        pace_seconds=pace_seconds,
        items=[JobItem.model_validate(item) for item in items],
        profile=ProfileData.model_validate(profile or {"company_name": "Loja Centro"}),
        created_at=now,
        updated_at=now,
    )
    return store.create_job(job)
