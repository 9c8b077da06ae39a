from tariff_engine.models.base import Base, TimestampMixin
from tariff_engine.models.audit import AuditEvent
from tariff_engine.models.cargo import CargoItem, ClearanceType, ImportBatch, MatchStatus
from tariff_engine.models.tariff import TariffRate, TariffRateHistory

__all__ = [
    "Base",
    "TimestampMixin",
    "AuditEvent",
    "CargoItem",
    "ClearanceType",
    "ImportBatch",
    "MatchStatus",
    "TariffRate",
    "TariffRateHistory",
]
