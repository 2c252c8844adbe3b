"""
Sales report tests.

Verifies:
- Period boundaries and unknown period rejection
- Paid revenue vs unpaid totals and counts
- Daily paid/unpaid series
- Top customers and top products ranking
- Deleted products keep a placeholder name
"""

from datetime import datetime, timezone

import pytest

from app.services.errors import ValidationError
from app.services.report_service import (
    DELETED_PRODUCT_NAME, PLACEHOLDER_PRODUCT_IMAGE, ReportService, TOP_PRODUCTS_LIMIT
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)

CUSTOMERS = [
    {'id': 'cust-1', 'name': 'علی', 'phone': '0912', 'email': 'ali@example.com'},
    {'id': 'cust-2', 'name': 'رضا', 'phone': '0935'},
]
PRODUCTS = [
    {'id': 'prod-1', 'name': 'F47', 'imageUrl': 'https://img/f47.png'},
    {'id': 'prod-2', 'name': 'UD'},
]


def _invoice(invoice_id, customer_id, date, status, total, items=()):
    return {
        'id': invoice_id,
        'customerId': customer_id,
        'customerName': next(c['name'] for c in CUSTOMERS if c['id'] == customer_id),
        'date': date,
        'status': status,
        'total': total,
        'items': [{'productId': pid, 'quantity': qty} for pid, qty in items],
    }


INVOICES = [
    _invoice('invo-1', 'cust-1', '2024-06-15T08:00:00Z', 'Paid', 1000, [('prod-1', 4), ('prod-2', 1)]),
    _invoice('invo-2', 'cust-2', '2024-06-14T09:00:00Z', 'Paid', 3000, [('prod-2', 2), ('prod-9', 7)]),
    _invoice('invo-3', 'cust-1', '2024-06-14T18:00:00Z', 'Unpaid', 500, [('prod-1', 10)]),
    _invoice('invo-4', 'cust-1', '2024-04-01T10:00:00Z', 'Paid', 200, [('prod-1', 1)]),
    _invoice('invo-5', 'cust-2', '2023-01-01T10:00:00Z', 'Overdue', 50),
    {'id': 'invo-6', 'customerId': 'cust-1', 'date': 'pas une date', 'status': 'Paid', 'total': 9999},
]


class TestPeriods:

    def test_all_has_no_start(self):
        assert ReportService.period_start('all', NOW) is None

    def test_today_starts_at_midnight(self):
        assert ReportService.period_start('today', NOW) == datetime(2024, 6, 15, tzinfo=timezone.utc)

    def test_rolling_windows(self):
        assert ReportService.period_start('7d', NOW) == datetime(2024, 6, 8, 12, 0, tzinfo=timezone.utc)
        assert ReportService.period_start('365d', NOW).year == 2023

    def test_unknown_period(self):
        with pytest.raises(ValidationError) as exc:
            ReportService.period_start('2w', NOW)
        assert 'period' in exc.value.details


class TestSalesSummary:

    def test_all_time_totals(self):
        summary = ReportService.sales_summary(INVOICES, CUSTOMERS, PRODUCTS, 'all', NOW)

        assert summary['period'] == 'all'
        assert summary['totalRevenue'] == 4200
        assert summary['unpaidTotal'] == 550
        assert summary['paidInvoiceCount'] == 3
        assert summary['unpaidInvoiceCount'] == 2
        assert summary['customerCount'] == 2

    def test_period_filters_invoices(self):
        summary = ReportService.sales_summary(INVOICES, CUSTOMERS, PRODUCTS, '7d', NOW)

        assert summary['totalRevenue'] == 4000
        assert summary['unpaidTotal'] == 500
        assert summary['dailySales'] == [
            {'date': '2024-06-14', 'paid': 3000, 'unpaid': 500},
            {'date': '2024-06-15', 'paid': 1000, 'unpaid': 0},
        ]

    def test_today(self):
        summary = ReportService.sales_summary(INVOICES, CUSTOMERS, PRODUCTS, 'today', NOW)
        assert summary['paidInvoiceCount'] == 1
        assert summary['unpaidInvoiceCount'] == 0

    def test_top_customers(self):
        summary = ReportService.sales_summary(INVOICES, CUSTOMERS, PRODUCTS, 'all', NOW)

        assert summary['topCustomers'] == [
            {'id': 'cust-2', 'name': 'رضا', 'phone': '0935', 'email': '', 'total': 3000},
            {'id': 'cust-1', 'name': 'علی', 'phone': '0912', 'email': 'ali@example.com', 'total': 1200},
        ]

    def test_top_products_count_paid_quantities(self):
        summary = ReportService.sales_summary(INVOICES, CUSTOMERS, PRODUCTS, 'all', NOW)
        top = summary['topProducts']

        assert [p['id'] for p in top] == ['prod-9', 'prod-1', 'prod-2']
        assert [p['quantity'] for p in top] == [7, 5, 3]
        assert top[0]['name'] == DELETED_PRODUCT_NAME
        assert top[0]['imageUrl'] == PLACEHOLDER_PRODUCT_IMAGE
        assert top[1]['imageUrl'] == 'https://img/f47.png'

    def test_top_products_limit(self):
        invoices = [
            _invoice(f'invo-{n}', 'cust-1', '2024-06-01T10:00:00Z', 'Paid', 10, [(f'prod-{n}', n)])
            for n in range(1, 15)
        ]
        top = ReportService.sales_summary(invoices, CUSTOMERS, [], 'all', NOW)['topProducts']
        assert len(top) == TOP_PRODUCTS_LIMIT
        assert top[0]['quantity'] == 14

    def test_empty(self):
        summary = ReportService.sales_summary([], [], [], '30d', NOW)
        assert summary['totalRevenue'] == 0
        assert summary['dailySales'] == []
        assert summary['topCustomers'] == []
