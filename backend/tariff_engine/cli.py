"""Command-line interface.

Usage:
    python -m tariff_engine lookup 8471300000 --origin CN
    python -m tariff_engine hierarchy 847130 --origin CN
    python -m tariff_engine calculate <batch-id> [--no-recalculate-customs-value] [--update-origin-tariffs]
    python -m tariff_engine import-catalog --classification cn.csv --measures taric.csv
    python -m tariff_engine audit <entity-id>

Results are printed as JSON.
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid

from tariff_engine.config import Settings, settings
from tariff_engine.customs_calculator.service import CalculationOptions
from tariff_engine.dependencies import Services, build_services
from tariff_engine.exceptions import TariffEngineError
from tariff_engine.observability import configure_logging
from tariff_engine.rate_parser.sources import read_csv_sheets
from tariff_engine.schemas import (
    AuditEventListResponse,
    AuditEventResponse,
    BatchLookupResponse,
    BatchTaxResponse,
    HierarchyResponse,
    RateLookupResponse,
    TaxDetailsResponse,
)
from tariff_engine.services.audit_service import AuditService

logger = logging.getLogger("tariff.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tariff_engine",
        description="Tariff classification and customs duty engine",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    lookup = commands.add_parser("lookup", help="Look up rates for one or more HS codes")
    lookup.add_argument("codes", nargs="+", metavar="CODE")
    lookup.add_argument("--origin", default=None, help="ISO origin country code, e.g. CN")

    hierarchy = commands.add_parser("hierarchy", help="Browse the classification tree around a code")
    hierarchy.add_argument("code")
    hierarchy.add_argument("--origin", default=None)

    calculate = commands.add_parser("calculate", help="Calculate import taxes for a batch")
    calculate.add_argument("batch_id", type=uuid.UUID)
    calculate.add_argument(
        "--no-recalculate-customs-value",
        dest="recalculate_customs_value",
        action="store_false",
        help="Keep stored customs values instead of re-deriving them from trade terms",
    )
    calculate.add_argument(
        "--update-origin-tariffs",
        action="store_true",
        help="Re-resolve origin-specific rates before computing",
    )
    calculate.add_argument("--details", action="store_true", help="Print the payable/deferred breakdown too")

    catalog = commands.add_parser("import-catalog", help="Merge CSV exports into the tariff store")
    catalog.add_argument("--classification", nargs="+", required=True, metavar="CSV")
    catalog.add_argument("--measures", nargs="*", default=[], metavar="CSV")

    audit = commands.add_parser("audit", help="Show audit events for an entity")
    audit.add_argument("entity_id", type=uuid.UUID)
    audit.add_argument("--limit", type=int, default=50)

    return parser


async def run_lookup(args, services: Services) -> dict:
    if len(args.codes) == 1:
        result = await services.lookup.lookup(args.codes[0], args.origin)
        return RateLookupResponse.model_validate(result).model_dump(mode="json")
    batch = await services.lookup.batch_lookup(args.codes, args.origin)
    return BatchLookupResponse.model_validate(batch).model_dump(mode="json")


async def run_hierarchy(args, services: Services) -> dict:
    result = await services.hierarchy.resolve(args.code, args.origin)
    return HierarchyResponse.model_validate(result).model_dump(mode="json")


async def run_calculate(args, services: Services) -> dict:
    from tariff_engine.database import async_session

    options = CalculationOptions(
        recalculate_customs_value=args.recalculate_customs_value,
        update_origin_tariffs=args.update_origin_tariffs,
    )
    async with async_session() as db:
        try:
            result = await services.tax.calculate_import_tax(db, args.batch_id, options)
            payload = {"result": BatchTaxResponse.model_validate(result).model_dump(mode="json")}
            if args.details:
                details = await services.tax.get_tax_details(db, args.batch_id)
                payload["details"] = TaxDetailsResponse.model_validate(details).model_dump(mode="json")
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return payload


async def run_import_catalog(args, services: Services) -> dict:
    from tariff_engine.database import async_session

    classification_sheets = await read_csv_sheets(args.classification)
    measure_sheets = await read_csv_sheets(args.measures)
    async with async_session() as db:
        try:
            result = await services.catalog.import_sheets(db, classification_sheets, measure_sheets)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return {
        "inserted": result.inserted,
        "updated": result.updated,
        "unchanged": result.unchanged,
        "deactivated": result.deactivated,
        "duplicates": result.duplicates,
        "history_rows": result.history_rows,
        "processing_time_ms": result.processing_time_ms,
    }


async def run_audit(args, services: Services) -> dict:
    from tariff_engine.database import async_session

    async with async_session() as db:
        events = await AuditService.get_events(db, entity_id=args.entity_id, limit=args.limit)
    response = AuditEventListResponse(
        events=[AuditEventResponse.model_validate(e) for e in events],
        total=len(events),
    )
    return response.model_dump(mode="json")


COMMANDS = {
    "lookup": run_lookup,
    "hierarchy": run_hierarchy,
    "calculate": run_calculate,
    "import-catalog": run_import_catalog,
    "audit": run_audit,
}


async def run(args, config: Settings = settings) -> dict:
    services = build_services(config)
    try:
        return await COMMANDS[args.command](args, services)
    finally:
        await services.aclose()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings)

    try:
        payload = asyncio.run(run(args))
    except (TariffEngineError, FileNotFoundError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1

    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0
