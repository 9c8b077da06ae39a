"""Readers that turn exported tariff files into RawSheet rows."""

import csv
import io
from pathlib import Path

import aiofiles

from tariff_engine.rate_parser.parser import RawSheet


async def read_csv_sheet(file_path: str | Path) -> RawSheet:
    """Read a CSV export; the sheet is named after the file stem."""
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV not found: {file_path}")

    async with aiofiles.open(path, mode="r", encoding="utf-8-sig", errors="replace") as f:
        content = await f.read()

    rows = [row for row in csv.reader(io.StringIO(content)) if any(cell.strip() for cell in row)]
    return RawSheet(name=path.stem, rows=rows)


async def read_csv_sheets(paths: list[str | Path]) -> list[RawSheet]:
    return [await read_csv_sheet(p) for p in paths]
