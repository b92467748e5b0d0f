from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from autoparts.db import q, transaction, x
from autoparts.errors import ReportFinalizedError
from autoparts.models import Batch, Sale
from autoparts.services.catalog import list_products
from autoparts.services.reports import MonthlyReportData, generate_report
from autoparts.services.sales import list_sales
from autoparts.utils import iso_now, month_date_range, month_label, next_period, to_datetime, validate_month

logger = logging.getLogger(__name__)


class ReportStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"


@dataclass
class MonthlyReport:
    """A stored monthly report row. Finalized rows never change again."""

    id: int
    year: int
    month: int
    total_sales: float
    total_profit: float
    average_profit_margin: float
    is_finalized: bool
    report_data: dict
    updated_at: datetime
    finalized_at: Optional[datetime] = None

    @property
    def status(self) -> ReportStatus:
        return ReportStatus.FINALIZED if self.is_finalized else ReportStatus.DRAFT

    @property
    def data(self) -> MonthlyReportData:
        return MonthlyReportData.from_dict(self.report_data)

    @property
    def label(self) -> str:
        return month_label(self.year, self.month)

    @classmethod
    def from_row(cls, r) -> "MonthlyReport":
        return cls(
            id=int(r["id"]),
            year=int(r["year"]),
            month=int(r["month"]),
            total_sales=float(r["total_sales"]),
            total_profit=float(r["total_profit"]),
            average_profit_margin=float(r["average_profit_margin"]),
            is_finalized=bool(r["is_finalized"]),
            report_data=json.loads(r["report_data"]),
            updated_at=to_datetime(r["updated_at"]),
            finalized_at=to_datetime(r["finalized_at"]) if r["finalized_at"] else None,
        )


@dataclass
class RolloverResult:
    final_report: MonthlyReport
    next_year: int
    next_month: int


def _load_report(conn: sqlite3.Connection, year: int, month: int) -> Optional[MonthlyReport]:
    rows = q(conn, "SELECT * FROM monthly_reports WHERE year=? AND month=?", (int(year), int(month)))
    return MonthlyReport.from_row(rows[0]) if rows else None


def list_monthly_reports(conn: sqlite3.Connection) -> list[MonthlyReport]:
    rows = q(conn, "SELECT * FROM monthly_reports ORDER BY year DESC, month DESC")
    return [MonthlyReport.from_row(r) for r in rows]


def build_report(conn: sqlite3.Connection, year: int, month: int) -> MonthlyReportData:
    """Gather current products, batches and the month's sales, then generate."""
    start, end = month_date_range(year, month)
    products = list_products(conn)
    batches = [Batch.from_row(r) for r in q(conn, "SELECT * FROM batches ORDER BY id")]
    sales: list[Sale] = list_sales(conn, start=start, end=end)
    return generate_report(products, batches, sales, year, month)


def _save_report(
    conn: sqlite3.Connection,
    year: int,
    month: int,
    data: MonthlyReportData,
    *,
    finalize: bool,
) -> None:
    now = iso_now()
    payload = json.dumps(data.to_dict())
    x(
        conn,
        """
        INSERT INTO monthly_reports (
            year, month, total_sales, total_profit, average_profit_margin,
            is_finalized, report_data, finalized_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(year, month) DO UPDATE SET
            total_sales = excluded.total_sales,
            total_profit = excluded.total_profit,
            average_profit_margin = excluded.average_profit_margin,
            is_finalized = excluded.is_finalized,
            report_data = excluded.report_data,
            finalized_at = excluded.finalized_at,
            updated_at = excluded.updated_at
        WHERE monthly_reports.is_finalized = 0
        """,
        (
            int(year),
            int(month),
            data.total_revenue,
            data.total_profit,
            data.average_profit_margin,
            1 if finalize else 0,
            payload,
            now if finalize else None,
            now,
        ),
    )


def get_monthly_report(conn: sqlite3.Connection, year: int, month: int) -> MonthlyReport:
    """
    Finalized month: the frozen snapshot, untouched.
    Draft month (or none yet): recompute from current data and store it.
    """
    validate_month(year, month)

    with transaction(conn):
        existing = _load_report(conn, year, month)
        if existing is not None and existing.is_finalized:
            return existing

        data = build_report(conn, year, month)
        _save_report(conn, year, month, data, finalize=False)

    return _load_report(conn, year, month)


def finalize_month(conn: sqlite3.Connection, year: int, month: int) -> RolloverResult:
    """
    Freeze a month: regenerate one last time and store it as finalized.

    Products and batches are not touched. There is no way back to draft;
    finalizing an already finalized month raises ReportFinalizedError.
    """
    validate_month(year, month)

    with transaction(conn):
        existing = _load_report(conn, year, month)
        if existing is not None and existing.is_finalized:
            raise ReportFinalizedError(int(year), int(month))

        data = build_report(conn, year, month)
        _save_report(conn, year, month, data, finalize=True)

    final_report = _load_report(conn, year, month)
    next_year, next_month = next_period(year, month)
    logger.info(
        "Month rollover completed from %s to %s",
        month_label(year, month),
        month_label(next_year, next_month),
    )
    return RolloverResult(final_report=final_report, next_year=next_year, next_month=next_month)
