"""Invoice routes for composition, numbering and status upkeep.

Handles:
- Invoice creation from a customer and catalog lines (snapshot of names and prices)
- Next invoice number for a store
- Overdue status refresh
"""
from flask import Blueprint, request

from app.models import CollectionName
from app.services.errors import DataError
from app.services.invoice_service import InvoiceService
from app.utils.decorators import user_required
from app.utils.helpers import (
    api_response, data_error_response, error_response, get_data_context,
    get_json_body, sync_payload
)

invoices_bp = Blueprint('invoices', __name__)


@invoices_bp.errorhandler(DataError)
def handle_data_error(error):
    return data_error_response(error)


def _store_name(context, store_id):
    if not store_id:
        return None
    store = context.get(CollectionName.STORES.value, store_id)
    return store.get('name') if store else None


@invoices_bp.route('', methods=['POST'])
@user_required
def create_invoice():
    """Create an invoice from catalog data.

    Body:
        customerId: Customer id (required)
        lines: [{productId, quantity, unitPrice?}] (required)
        storeId, discount, tax, date, dueDate, status, description, invoiceNumber (optional)

    Returns:
        The stored invoice with its sync status.
    """
    data = get_json_body()
    context = get_data_context()

    customer = context.get(CollectionName.CUSTOMERS.value, data.get('customerId'))
    if customer is None:
        return error_response('VALIDATION_ERROR', 'Client introuvable', 400,
                              {'customerId': 'Client introuvable'})

    invoices = context.list(CollectionName.INVOICES.value)
    store_id = data.get('storeId')
    invoice_number = data.get('invoiceNumber') or InvoiceService.next_invoice_number(
        invoices, _store_name(context, store_id)
    )

    invoice = InvoiceService.compose_invoice(
        customer=customer,
        lines=data.get('lines') or [],
        products=context.list(CollectionName.PRODUCTS.value),
        invoice_number=invoice_number,
        discount=data.get('discount', 0),
        tax=data.get('tax', 0),
        issue_date=data.get('date'),
        due_date=data.get('dueDate'),
        status=data.get('status', 'Pending'),
        description=data.get('description'),
        store_id=store_id,
    )

    result = context.add(CollectionName.INVOICES.value, invoice)
    return api_response(True, data={'record': result.record, 'sync': sync_payload(result.sync)},
                        message='Facture créée', status_code=201)


@invoices_bp.route('/next-number', methods=['GET'])
@user_required
def next_number():
    """Get the next invoice number for a store (?storeId=...)."""
    context = get_data_context()
    invoices = context.list(CollectionName.INVOICES.value)
    number = InvoiceService.next_invoice_number(invoices, _store_name(context, request.args.get('storeId')))
    return api_response(True, data={'invoiceNumber': number})


@invoices_bp.route('/refresh-status', methods=['POST'])
@user_required
def refresh_status():
    """Mark pending invoices past their due date as overdue."""
    updated = get_data_context().refresh_overdue_status()
    return api_response(True, data={'updated': [i['id'] for i in updated]})
