from tariff_engine.schemas.audit import AuditEventListResponse, AuditEventResponse
from tariff_engine.schemas.hierarchy import HierarchyResponse
from tariff_engine.schemas.tariff import BatchLookupResponse, RateLookupResponse
from tariff_engine.schemas.tax import BatchTaxResponse, TaxDetailsResponse

__all__ = [
    "AuditEventListResponse",
    "AuditEventResponse",
    "BatchLookupResponse",
    "BatchTaxResponse",
    "HierarchyResponse",
    "RateLookupResponse",
    "TaxDetailsResponse",
]
