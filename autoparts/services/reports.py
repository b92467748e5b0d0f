"""
Monthly report generation.

generate_report() is a pure function over products, batches and sales: it
reads nothing from storage and can be called as often as needed. The dict
produced by MonthlyReportData.to_dict() is the persisted `report_data` shape.

Product cost is the unit cost stored on each sale times its quantity, as the
sale header records it (the oldest batch drawn from). The exact FIFO cost over
every sale line is reported next to it as `fifo_cost`.

Starting inventory is derived backwards from the current stock counter
(ending - purchased + sold). That is only exact when no batch was corrected
or deleted after the month closed.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

import pandas as pd

from autoparts.models import Batch, Product, Sale
from autoparts.utils import is_in_month, margin_pct, month_date_range, to_datetime, to_iso


@dataclass
class BatchSummary:
    batch_id: int
    purchase_date: str
    purchase_price: float
    initial_quantity: int
    remaining_quantity: int
    supplier: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "batchId": self.batch_id,
            "purchaseDate": self.purchase_date,
            "purchasePrice": self.purchase_price,
            "initialQuantity": self.initial_quantity,
            "remainingQuantity": self.remaining_quantity,
            "supplier": self.supplier,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "BatchSummary":
        return cls(
            batch_id=d["batchId"],
            purchase_date=d["purchaseDate"],
            purchase_price=float(d["purchasePrice"]),
            initial_quantity=int(d["initialQuantity"]),
            remaining_quantity=int(d["remainingQuantity"]),
            supplier=d.get("supplier"),
        )


@dataclass
class ProductMonthReport:
    product_id: int
    product_name: str
    sku: str
    category: str
    starting_quantity: int
    ending_quantity: int
    purchased_quantity: int
    sold_quantity: int
    revenue: float
    cost: float
    profit: float
    profit_margin: float
    batches: list[BatchSummary] = field(default_factory=list)
    fifo_cost: float = 0.0

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "sku": self.sku,
            "category": self.category,
            "startingQuantity": self.starting_quantity,
            "endingQuantity": self.ending_quantity,
            "purchasedQuantity": self.purchased_quantity,
            "soldQuantity": self.sold_quantity,
            "revenue": self.revenue,
            "cost": self.cost,
            "profit": self.profit,
            "profitMargin": self.profit_margin,
            "fifoCost": self.fifo_cost,
            "batches": [b.to_dict() for b in self.batches],
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ProductMonthReport":
        return cls(
            product_id=d["productId"],
            product_name=d["productName"],
            sku=d["sku"],
            category=d["category"],
            starting_quantity=int(d["startingQuantity"]),
            ending_quantity=int(d["endingQuantity"]),
            purchased_quantity=int(d["purchasedQuantity"]),
            sold_quantity=int(d["soldQuantity"]),
            revenue=float(d["revenue"]),
            cost=float(d["cost"]),
            profit=float(d["profit"]),
            profit_margin=float(d["profitMargin"]),
            batches=[BatchSummary.from_dict(b) for b in d.get("batches", [])],
            fifo_cost=float(d.get("fifoCost", d["cost"])),
        )


@dataclass
class MonthlyReportData:
    year: int
    month: int
    start_date: str
    end_date: str
    products: list[ProductMonthReport]
    total_starting_inventory: int
    total_ending_inventory: int
    total_purchased: int
    total_sold: int
    total_revenue: float
    total_cost: float
    total_profit: float
    average_profit_margin: float
    total_fifo_cost: float = 0.0

    @property
    def total_sales(self) -> float:
        return self.total_revenue

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "month": self.month,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "products": [p.to_dict() for p in self.products],
            "totalStartingInventory": self.total_starting_inventory,
            "totalEndingInventory": self.total_ending_inventory,
            "totalPurchased": self.total_purchased,
            "totalSold": self.total_sold,
            "totalRevenue": self.total_revenue,
            "totalCost": self.total_cost,
            "totalFifoCost": self.total_fifo_cost,
            "totalProfit": self.total_profit,
            "totalSales": self.total_revenue,
            "averageProfitMargin": self.average_profit_margin,
            "avgProfitMargin": self.average_profit_margin,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MonthlyReportData":
        return cls(
            year=int(d["year"]),
            month=int(d["month"]),
            start_date=d["startDate"],
            end_date=d["endDate"],
            products=[ProductMonthReport.from_dict(p) for p in d.get("products", [])],
            total_starting_inventory=int(d["totalStartingInventory"]),
            total_ending_inventory=int(d["totalEndingInventory"]),
            total_purchased=int(d["totalPurchased"]),
            total_sold=int(d["totalSold"]),
            total_revenue=float(d["totalRevenue"]),
            total_cost=float(d["totalCost"]),
            total_profit=float(d["totalProfit"]),
            average_profit_margin=float(d["averageProfitMargin"]),
            total_fifo_cost=float(d.get("totalFifoCost", d["totalCost"])),
        )


def _batch_summaries(batches: list[Batch]) -> list[BatchSummary]:
    ordered = sorted(batches, key=lambda b: to_datetime(b.purchase_date))
    return [
        BatchSummary(
            batch_id=b.id,
            purchase_date=to_iso(b.purchase_date),
            purchase_price=b.purchase_price,
            initial_quantity=b.initial_quantity,
            remaining_quantity=b.current_quantity,
            supplier=b.supplier,
        )
        for b in ordered
    ]


def generate_report(
    products: Iterable[Product],
    batches: Iterable[Batch],
    sales: Iterable[Sale],
    year: int,
    month: int,
) -> MonthlyReportData:
    """Build the report for calendar month `month` (0-indexed) of `year`."""
    start, end = month_date_range(year, month)
    batches = list(batches)

    batches_by_product: dict[int, list[Batch]] = defaultdict(list)
    for b in batches:
        batches_by_product[b.product_id].append(b)

    month_sales_by_product: dict[int, list[Sale]] = defaultdict(list)
    for s in sales:
        if is_in_month(s.sale_date, year, month):
            month_sales_by_product[s.product_id].append(s)

    product_reports: list[ProductMonthReport] = []
    for p in products:
        p_batches = batches_by_product.get(p.id, [])
        p_sales = month_sales_by_product.get(p.id, [])

        purchased = sum(
            b.initial_quantity for b in p_batches if start <= to_datetime(b.purchase_date) <= end
        )
        sold = sum(s.quantity for s in p_sales)
        revenue = sum(s.revenue for s in p_sales)
        # cost at the unit cost recorded on the sale; fifo_cost sums every batch line
        cost = sum(s.purchase_price * s.quantity for s in p_sales)
        fifo_cost = sum(s.cost for s in p_sales)
        profit = revenue - cost

        ending = int(p.total_stock)
        starting = ending - purchased + sold

        product_reports.append(
            ProductMonthReport(
                product_id=p.id,
                product_name=p.name,
                sku=p.sku,
                category=p.category,
                starting_quantity=starting,
                ending_quantity=ending,
                purchased_quantity=purchased,
                sold_quantity=sold,
                revenue=revenue,
                cost=cost,
                profit=profit,
                profit_margin=margin_pct(profit, cost),
                batches=_batch_summaries(p_batches),
                fifo_cost=fifo_cost,
            )
        )

    total_revenue = sum(r.revenue for r in product_reports)
    total_cost = sum(r.cost for r in product_reports)
    total_profit = total_revenue - total_cost

    return MonthlyReportData(
        year=int(year),
        month=int(month),
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        products=product_reports,
        total_starting_inventory=sum(r.starting_quantity for r in product_reports),
        total_ending_inventory=sum(r.ending_quantity for r in product_reports),
        total_purchased=sum(r.purchased_quantity for r in product_reports),
        total_sold=sum(r.sold_quantity for r in product_reports),
        total_revenue=total_revenue,
        total_cost=total_cost,
        total_profit=total_profit,
        average_profit_margin=margin_pct(total_profit, total_cost),
        total_fifo_cost=sum(r.fifo_cost for r in product_reports),
    )


REPORT_COLUMNS = [
    "sku",
    "product",
    "category",
    "starting_qty",
    "purchased_qty",
    "sold_qty",
    "ending_qty",
    "revenue",
    "cost",
    "fifo_cost",
    "profit",
    "profit_margin_pct",
]


def report_to_frame(report: MonthlyReportData) -> pd.DataFrame:
    """One row per product, money rounded for display."""
    rows = [
        {
            "sku": p.sku,
            "product": p.product_name,
            "category": p.category,
            "starting_qty": p.starting_quantity,
            "purchased_qty": p.purchased_quantity,
            "sold_qty": p.sold_quantity,
            "ending_qty": p.ending_quantity,
            "revenue": round(p.revenue, 2),
            "cost": round(p.cost, 2),
            "fifo_cost": round(p.fifo_cost, 2),
            "profit": round(p.profit, 2),
            "profit_margin_pct": round(p.profit_margin, 2),
        }
        for p in report.products
    ]
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def batches_to_frame(report: MonthlyReportData) -> pd.DataFrame:
    rows = [
        {"sku": p.sku, **b.to_dict()}
        for p in report.products
        for b in p.batches
    ]
    return pd.DataFrame(rows)
