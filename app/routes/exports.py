"""
Routes exports - CSV et Excel
=============================

Exports des collections de l'utilisateur. Les produits reçoivent le nom de
leur catégorie; les identifiants internes ne sont jamais exportés.
"""

import logging

from flask import Blueprint, Response, current_app

from app.models import COLLECTIONS, CollectionName
from app.services.errors import UnknownCollectionError
from app.services.export_service import (
    DEFAULT_HEADERS, CSVGenerator, ExcelGenerator, export_filename, with_category_names
)
from app.utils.decorators import user_required
from app.utils.helpers import data_error_response, error_response, get_data_context

exports_bp = Blueprint('exports', __name__)
logger = logging.getLogger(__name__)

FORMATS = ('csv', 'xlsx')


@exports_bp.route('/<collection>.<fmt>', methods=['GET'])
@user_required
def export_collection(collection, fmt):
    """
    Télécharge une collection

    Formats: csv (UTF-8 avec BOM), xlsx
    """
    if collection not in COLLECTIONS:
        return data_error_response(UnknownCollectionError(collection))
    if fmt not in FORMATS:
        return error_response('BAD_REQUEST', f"Format non supporté: {fmt}", 400, {'formats': list(FORMATS)})

    context = get_data_context()
    records = context.list(collection)
    if collection == CollectionName.PRODUCTS.value:
        records = with_category_names(records, context.list(CollectionName.CATEGORIES.value))

    headers = DEFAULT_HEADERS.get(collection)
    date_format = current_app.config.get('CSV_DATE_FORMAT', '%Y/%m/%d')

    if fmt == 'csv':
        result = CSVGenerator(date_format).generate(records, export_filename(collection, 'csv'), headers)
    else:
        result = ExcelGenerator(date_format).generate(
            records, collection, export_filename(collection, 'xlsx'), headers
        )

    if not result.success:
        return error_response('NOT_FOUND', result.error or 'Aucune donnée à exporter', 404)

    logger.info(f"Export {collection}.{fmt}: {len(records)} ligne(s)")
    return Response(
        result.data,
        mimetype=result.content_type,
        headers={
            'Content-Disposition': f'attachment; filename="{result.filename}"',
            'Content-Length': len(result.data)
        }
    )
