"""Invoice service for totals, numbering and invoice composition.

Handles:
- Line total and invoice total calculation (subtotal - discount + tax)
- Invoice number allocation from the store name prefix
- Invoice composition from catalog products and a customer snapshot
- Overdue status refresh for pending invoices past their due date
"""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.models import Invoice, InvoiceItem, InvoiceStatus
from app.models.records import is_number
from app.services.errors import ValidationError

AMOUNT_TOLERANCE = 0.01
DEFAULT_INVOICE_PREFIX = 'INV'
STORE_WORDS = ('فروشگاه', 'شرکت', 'گروه')


def parse_datetime(value) -> Optional[datetime]:
    """Parse an ISO 8601 string (with optional trailing Z) into an aware datetime.

    Returns None when the value is empty or not a date.
    """
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _amount(value) -> float:
    return value if is_number(value) else 0


class InvoiceService:
    """Stateless helpers operating on invoice documents (camelCase dicts)."""

    @classmethod
    def calculate_line_total(cls, quantity, unit_price) -> float:
        """Calculate a line total (quantity x unit price).

        Args:
            quantity: Quantity sold
            unit_price: Price per unit

        Returns:
            float: Line total, 0 when either value is not a number
        """
        return round(_amount(quantity) * _amount(unit_price), 2)

    @classmethod
    def recalculate(cls, invoice: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of the invoice with every derived amount recomputed.

        Line totals, subtotal and total are rewritten; discount and tax are kept.
        """
        result = dict(invoice)
        items = result.get('items')
        if not isinstance(items, list):
            items = []

        recalculated = []
        for item in items:
            if isinstance(item, dict):
                item = dict(item)
                item['totalPrice'] = cls.calculate_line_total(item.get('quantity'), item.get('unitPrice'))
            recalculated.append(item)

        subtotal = round(sum(i.get('totalPrice', 0) for i in recalculated if isinstance(i, dict)), 2)
        result['items'] = recalculated
        result['subtotal'] = subtotal
        result['total'] = round(subtotal - _amount(result.get('discount')) + _amount(result.get('tax')), 2)
        return result

    @classmethod
    def totals_are_consistent(cls, invoice: Dict[str, Any]) -> bool:
        """Check line totals and invoice total against their formulas."""
        items = invoice.get('items') or []
        subtotal = 0
        for item in items:
            expected = _amount(item.get('quantity')) * _amount(item.get('unitPrice'))
            if abs(_amount(item.get('totalPrice')) - expected) > AMOUNT_TOLERANCE:
                return False
            subtotal += expected
        if abs(_amount(invoice.get('subtotal')) - subtotal) > AMOUNT_TOLERANCE:
            return False
        expected_total = subtotal - _amount(invoice.get('discount')) + _amount(invoice.get('tax'))
        return abs(_amount(invoice.get('total')) - expected_total) <= AMOUNT_TOLERANCE

    # ==================== Numbering ====================

    @classmethod
    def store_prefix(cls, store_name: Optional[str]) -> str:
        """Three upper-cased Latin letters from the store name, INV otherwise."""
        cleaned = store_name or ''
        for word in STORE_WORDS:
            cleaned = cleaned.replace(word, '')
        letters = re.sub(r'[^a-zA-Z]', '', cleaned)
        return letters[:3].upper() if letters else DEFAULT_INVOICE_PREFIX

    @classmethod
    def next_invoice_number(cls, invoices: List[Dict[str, Any]], store_name: Optional[str] = None) -> str:
        """Allocate the next invoice number for a store.

        Format: PREFIX-NNNNN (ex: DEC-00012). The sequence continues from the
        highest number already used with the same prefix.
        """
        prefix = cls.store_prefix(store_name)
        pattern = re.compile(rf'^{re.escape(prefix)}-(\d+)$')
        highest = 0
        for invoice in invoices:
            match = pattern.match(str(invoice.get('invoiceNumber') or ''))
            if match:
                highest = max(highest, int(match.group(1)))
        return f"{prefix}-{highest + 1:05d}"

    # ==================== Composition ====================

    @classmethod
    def compose_invoice(cls, customer: Dict[str, Any], lines: List[Dict[str, Any]],
                        products: List[Dict[str, Any]], invoice_number: str,
                        discount: float = 0, tax: float = 0,
                        issue_date: Optional[str] = None, due_date: Optional[str] = None,
                        status: str = InvoiceStatus.PENDING.value,
                        description: Optional[str] = None,
                        store_id: Optional[str] = None) -> Dict[str, Any]:
        """Build a new invoice document (without id) from catalog data.

        Customer name/email and product name/unit/image are copied into the
        invoice so that later edits of the catalog do not change it.

        Args:
            customer: Customer document
            lines: [{'productId', 'quantity', 'unitPrice' (optional, defaults to product price)}]
            products: Product documents available for lookup
            invoice_number: Display number
            discount: Discount amount
            tax: Tax amount
            issue_date: ISO 8601 issue date (defaults to now)
            due_date: ISO 8601 due date
            status: Initial status
            description: Free text
            store_id: Issuing store

        Returns:
            dict: Invoice document with derived amounts computed

        Raises:
            ValidationError: Unknown product, invalid quantity/price or invalid status
        """
        products_by_id = {p.get('id'): p for p in products}
        items = []
        errors = {}

        if not lines:
            errors['items'] = 'Au moins une ligne est requise'

        for index, line in enumerate(lines or []):
            product = products_by_id.get(line.get('productId'))
            if product is None:
                errors[f'items[{index}].productId'] = 'Produit introuvable'
                continue
            unit_price = line.get('unitPrice', product.get('price', 0))
            item = InvoiceItem(
                product_id=product['id'],
                product_name=product.get('name', ''),
                quantity=line.get('quantity', 1),
                unit_price=unit_price,
                unit=line.get('unit') or product.get('unit'),
                image_url=product.get('imageUrl'),
            )
            for key, message in item.validate().items():
                errors[f'items[{index}].{key}'] = message
            items.append(item)

        invoice = Invoice(
            invoice_number=invoice_number,
            customer_id=customer.get('id', ''),
            customer_name=customer.get('name', ''),
            customer_email=customer.get('email', ''),
            date=issue_date or datetime.now(timezone.utc).isoformat(),
            due_date=due_date,
            status=status,
            items=items,
            discount=discount,
            tax=tax,
            description=description,
            store_id=store_id,
        )
        errors.update(invoice.validate())
        if errors:
            raise ValidationError('Facture invalide', errors)

        data = invoice.to_dict()
        data.pop('id', None)
        return cls.recalculate(data)

    # ==================== Status ====================

    @classmethod
    def overdue_invoices(cls, invoices: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Pending invoices whose due date has passed.

        Args:
            invoices: Invoice documents
            now: Reference time (defaults to current UTC time)

        Returns:
            list: The matching invoices (unchanged)
        """
        now = now or datetime.now(timezone.utc)
        overdue = []
        for invoice in invoices:
            if invoice.get('status') != InvoiceStatus.PENDING.value:
                continue
            due = parse_datetime(invoice.get('dueDate'))
            if due is not None and due < now:
                overdue.append(invoice)
        return overdue
