"""ServiceOrder entity — the work order a provider must be found for.

Owned by the order subsystem; the funnel only reads it.
"""

from dataclasses import dataclass, field
from datetime import datetime

from app.domain.value_objects.coordinates import Coordinates
from app.domain.value_objects.enums import OrderPriority
from app.domain.value_objects.time_window import TimeWindow


@dataclass
class ServiceOrder:
    id: str
    postal_code: str
    specialty_id: str
    location: Coordinates | None = None
    related_specialty_ids: frozenset[str] = field(default_factory=frozenset)
    required_certification: str | None = None
    time_window: TimeWindow | None = None
    priority: OrderPriority = OrderPriority.STANDARD
    created_at: datetime | None = None

    def requested_specialties(self) -> frozenset[str]:
        return frozenset({self.specialty_id}) | self.related_specialty_ids
