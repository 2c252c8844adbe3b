"""Report service for sales summaries.

Handles:
- Period filtering (today, 7d, 30d, 90d, 365d, all)
- Revenue and invoice counts (revenue counts paid invoices only)
- Daily paid / unpaid series
- Top customers by paid total and top products by paid quantity
"""
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from app.models import InvoiceStatus
from app.services.errors import ValidationError
from app.services.invoice_service import parse_datetime

DELETED_PRODUCT_NAME = 'محصول حذف شده'
PLACEHOLDER_PRODUCT_IMAGE = 'https://placehold.co/64x64'
TOP_CUSTOMERS_LIMIT = 5
TOP_PRODUCTS_LIMIT = 10

PERIOD_DAYS = {'7d': 7, '30d': 30, '90d': 90, '365d': 365}
PERIODS = ('today', *PERIOD_DAYS.keys(), 'all')


class ReportService:
    """Service computing sales summaries from invoice documents."""

    @classmethod
    def period_start(cls, period: str, now: Optional[datetime] = None) -> Optional[datetime]:
        """Get the first instant included in a period.

        Args:
            period: One of PERIODS.
            now: Reference time (defaults to current UTC time).

        Returns:
            datetime or None for 'all'.

        Raises:
            ValidationError: Unknown period.
        """
        now = now or datetime.now(timezone.utc)
        if period == 'all':
            return None
        if period == 'today':
            return now.replace(hour=0, minute=0, second=0, microsecond=0)
        if period in PERIOD_DAYS:
            return now - timedelta(days=PERIOD_DAYS[period])
        raise ValidationError('Période inconnue', {'period': f"Valeurs acceptées: {', '.join(PERIODS)}"})

    @classmethod
    def sales_summary(
        cls,
        invoices: List[Dict[str, Any]],
        customers: List[Dict[str, Any]],
        products: List[Dict[str, Any]],
        period: str = 'all',
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Summarize sales over a period.

        Invoices without a valid date are ignored.

        Args:
            invoices: Invoice documents.
            customers: Customer documents (phone/email lookup).
            products: Product documents (name/image lookup).
            period: One of PERIODS.
            now: Reference time.

        Returns:
            dict: totalRevenue, unpaidTotal, paidInvoiceCount, unpaidInvoiceCount,
            customerCount, dailySales, topCustomers, topProducts.
        """
        start = cls.period_start(period, now)

        in_period = []
        for invoice in invoices:
            issued = parse_datetime(invoice.get('date'))
            if issued is None or (start is not None and issued < start):
                continue
            in_period.append((issued, invoice))

        paid = [inv for _, inv in in_period if inv.get('status') == InvoiceStatus.PAID.value]
        unpaid = [inv for _, inv in in_period if inv.get('status') != InvoiceStatus.PAID.value]

        daily = defaultdict(lambda: {'paid': 0, 'unpaid': 0})
        for issued, invoice in in_period:
            bucket = 'paid' if invoice.get('status') == InvoiceStatus.PAID.value else 'unpaid'
            daily[issued.strftime('%Y-%m-%d')][bucket] += invoice.get('total') or 0

        return {
            'period': period,
            'totalRevenue': sum(inv.get('total') or 0 for inv in paid),
            'unpaidTotal': sum(inv.get('total') or 0 for inv in unpaid),
            'paidInvoiceCount': len(paid),
            'unpaidInvoiceCount': len(unpaid),
            'customerCount': len({inv.get('customerId') for inv in paid}),
            'dailySales': [{'date': day, **daily[day]} for day in sorted(daily)],
            'topCustomers': cls._top_customers(paid, customers),
            'topProducts': cls._top_products(paid, products),
        }

    @classmethod
    def _top_customers(cls, paid: List[dict], customers: List[dict]) -> List[dict]:
        by_id = {c.get('id'): c for c in customers}
        spending: Dict[str, dict] = {}
        for invoice in paid:
            entry = spending.setdefault(invoice.get('customerId'), {'total': 0, 'name': invoice.get('customerName', '')})
            entry['total'] += invoice.get('total') or 0

        ranked = []
        for customer_id, entry in spending.items():
            details = by_id.get(customer_id, {})
            ranked.append({
                'id': customer_id,
                'name': entry['name'],
                'phone': details.get('phone', ''),
                'email': details.get('email', ''),
                'total': entry['total'],
            })
        ranked.sort(key=lambda c: c['total'], reverse=True)
        return ranked[:TOP_CUSTOMERS_LIMIT]

    @classmethod
    def _top_products(cls, paid: List[dict], products: List[dict]) -> List[dict]:
        by_id = {p.get('id'): p for p in products}
        quantities = defaultdict(int)
        for invoice in paid:
            for item in invoice.get('items') or []:
                quantities[item.get('productId')] += item.get('quantity') or 0

        ranked = []
        for product_id, quantity in quantities.items():
            product = by_id.get(product_id)
            ranked.append({
                'id': product_id,
                'name': product.get('name') if product else DELETED_PRODUCT_NAME,
                'imageUrl': (product or {}).get('imageUrl') or PLACEHOLDER_PRODUCT_IMAGE,
                'quantity': quantity,
            })
        ranked.sort(key=lambda p: p['quantity'], reverse=True)
        return ranked[:TOP_PRODUCTS_LIMIT]
