"""Report routes for sales summaries.

Handles:
- Sales summary over a period (revenue, unpaid total, daily series, top customers and products)
"""
from flask import Blueprint, request

from app.models import CollectionName
from app.services.errors import DataError
from app.services.report_service import ReportService
from app.utils.decorators import user_required
from app.utils.helpers import api_response, data_error_response, get_data_context

reports_bp = Blueprint('reports', __name__)


@reports_bp.errorhandler(DataError)
def handle_data_error(error):
    return data_error_response(error)


@reports_bp.route('/sales', methods=['GET'])
@user_required
def get_sales_report():
    """Get the sales summary.

    Query params:
        period: today, 7d, 30d, 90d, 365d or all (default all)

    Returns:
        Sales summary for the period
    """
    period = request.args.get('period', 'all')
    context = get_data_context()

    summary = ReportService.sales_summary(
        invoices=context.list(CollectionName.INVOICES.value),
        customers=context.list(CollectionName.CUSTOMERS.value),
        products=context.list(CollectionName.PRODUCTS.value),
        period=period,
    )
    return api_response(True, data=summary)
