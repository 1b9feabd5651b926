"""ProviderWorkload — job counters read from the scheduling subsystem."""

from dataclasses import dataclass, field


@dataclass
class ProviderWorkload:
    provider_id: str
    jobs_today: int = 0
    jobs_this_week: int = 0
    jobs_today_by_team: dict[str, int] = field(default_factory=dict)
    jobs_today_by_zone: dict[str, int] = field(default_factory=dict)
    jobs_this_month_by_specialty: dict[str, int] = field(default_factory=dict)

    @classmethod
    def empty(cls, provider_id: str) -> "ProviderWorkload":
        return cls(provider_id=provider_id)
