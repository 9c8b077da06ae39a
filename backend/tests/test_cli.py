"""Tests for the command-line interface."""

import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tariff_engine.cli import build_parser, main, run, run_hierarchy, run_lookup
from tariff_engine.exceptions import ClassificationNotFoundError
from tariff_engine.hierarchy.resolver import BreadcrumbEntry, HierarchyResult
from tariff_engine.tariff_lookup.rates import MeasureSummary, RateLookupResult
from tariff_engine.tariff_lookup.service import BatchLookupError, BatchLookupResult
from tariff_engine.tariff_merger.measures import MeasureKind


def lookup_result(code: str = "8471300000") -> RateLookupResult:
    return RateLookupResult(
        hs_code=code[:8],
        hs_code_10=code,
        original_hs_code=code,
        matched_hs_code=code,
        origin_country_code="CN",
        duty_rate=0.0,
        vat_rate=20.0,
        measures=[MeasureSummary(
            type="Third country duty", type_id="103", kind=MeasureKind.THIRD_COUNTRY,
            geographical_area="ERGA OMNES", geographical_area_id="1011",
            duty_expression="0.00 %", rate=0.0,
        )],
    )


@pytest.fixture
def services() -> MagicMock:
    services = MagicMock()
    services.aclose = AsyncMock()
    services.lookup.lookup = AsyncMock(return_value=lookup_result())
    services.lookup.batch_lookup = AsyncMock()
    services.hierarchy.resolve = AsyncMock()
    return services


class TestParser:
    def test_lookup_accepts_many_codes(self):
        args = build_parser().parse_args(["lookup", "8471300000", "7318150000", "--origin", "CN"])
        assert args.codes == ["8471300000", "7318150000"]
        assert args.origin == "CN"

    def test_calculate_flags(self):
        batch_id = uuid.uuid4()
        args = build_parser().parse_args([
            "calculate", str(batch_id), "--no-recalculate-customs-value", "--update-origin-tariffs",
        ])
        assert args.batch_id == batch_id
        assert args.recalculate_customs_value is False
        assert args.update_origin_tariffs is True
        assert args.details is False

    def test_calculate_defaults(self):
        args = build_parser().parse_args(["calculate", str(uuid.uuid4())])
        assert args.recalculate_customs_value is True
        assert args.update_origin_tariffs is False

    def test_import_catalog_requires_classification(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["import-catalog", "--measures", "taric.csv"])

    def test_rejects_bad_batch_id(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["calculate", "not-a-uuid"])


class TestHandlers:
    @pytest.mark.asyncio
    async def test_single_lookup(self, services):
        args = build_parser().parse_args(["lookup", "8471.30.00.00", "--origin", "CN"])

        payload = await run_lookup(args, services)

        services.lookup.lookup.assert_awaited_once_with("8471.30.00.00", "CN")
        assert payload["matched_hs_code"] == "8471300000"
        assert payload["measures"][0]["kind"] == "third_country"

    @pytest.mark.asyncio
    async def test_many_codes_use_batch_lookup(self, services):
        services.lookup.batch_lookup.return_value = BatchLookupResult(
            results=[lookup_result()],
            errors=[BatchLookupError(hs_code="9999999999", error="classification not found")],
            total_count=2,
        )
        args = build_parser().parse_args(["lookup", "8471300000", "9999999999"])

        payload = await run_lookup(args, services)

        services.lookup.batch_lookup.assert_awaited_once_with(["8471300000", "9999999999"], None)
        assert payload["total_count"] == 2
        assert payload["errors"][0]["hs_code"] == "9999999999"

    @pytest.mark.asyncio
    async def test_hierarchy(self, services):
        services.hierarchy.resolve.return_value = HierarchyResult(
            code="0101",
            level="heading",
            breadcrumb=[BreadcrumbEntry(code="0101", description="Live horses", level="heading")],
        )
        args = build_parser().parse_args(["hierarchy", "0101"])

        payload = await run_hierarchy(args, services)

        assert payload["code"] == "0101"
        assert payload["breadcrumb"][0]["level"] == "heading"

    @pytest.mark.asyncio
    async def test_run_closes_services(self, services, settings):
        args = build_parser().parse_args(["lookup", "8471300000"])

        with patch("tariff_engine.cli.build_services", return_value=services):
            payload = await run(args, settings)

        assert payload["hs_code_10"] == "8471300000"
        services.aclose.assert_awaited_once()


class TestMain:
    def test_prints_payload(self, capsys):
        with patch("tariff_engine.cli.configure_logging"), \
                patch("tariff_engine.cli.run", AsyncMock(return_value={"hs_code_10": "8471300000"})):
            code = main(["lookup", "8471300000"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"hs_code_10": "8471300000"}

    def test_engine_errors_exit_non_zero(self, capsys):
        error = ClassificationNotFoundError("9999999999", ["9999999999", "9999"])
        with patch("tariff_engine.cli.configure_logging"), \
                patch("tariff_engine.cli.run", AsyncMock(side_effect=error)):
            code = main(["lookup", "9999999999"])

        assert code == 1
        assert "classification not found" in json.loads(capsys.readouterr().err)["error"]
