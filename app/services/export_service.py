"""
Service d'Export - CSV et Excel
===============================

Exporte une liste de documents sous forme de tableau.
- CSV: BOM UTF-8 (lisible par Excel), fins de ligne CRLF
- Excel: openpyxl, en-tête stylé

Traitement commun des lignes:
- les champs techniques (ids, références, lignes de facture) sont retirés;
- les champs date sont formatés (CSV_DATE_FORMAT);
- les valeurs absentes ou nulles donnent une cellule vide.
"""

import csv
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import openpyxl
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.models import CollectionName
from app.services.invoice_service import parse_datetime

logger = logging.getLogger(__name__)

BOM = '\ufeff'
LINE_TERMINATOR = '\r\n'
DEFAULT_DATE_FORMAT = '%Y/%m/%d'
EXCLUDED_FIELDS = (
    'id', 'items', 'customerId', 'storeId', 'subCategoryId',
    'categoryId', 'parentId', 'productId', 'unitId',
)
DATE_FIELDS = ('date', 'dueDate')

# En-têtes affichés par collection (clé du document -> libellé)
DEFAULT_HEADERS = {
    CollectionName.CUSTOMERS.value: {
        'name': 'نام',
        'email': 'ایمیل',
        'phone': 'تلفن',
        'address': 'آدرس',
    },
    CollectionName.PRODUCTS.value: {
        'name': 'نام محصول',
        'description': 'توضیحات',
        'price': 'قیمت',
        'categoryName': 'دسته‌بندی',
        'unit': 'واحد',
    },
    CollectionName.INVOICES.value: {
        'invoiceNumber': 'شماره فاکتور',
        'customerName': 'نام مشتری',
        'customerEmail': 'ایمیل مشتری',
        'date': 'تاریخ',
        'status': 'وضعیت',
        'subtotal': 'جمع جزء',
        'discount': 'تخفیف',
        'tax': 'مالیات',
        'total': 'جمع کل',
        'description': 'توضیحات',
    },
}


@dataclass
class ExportResult:
    """Résultat d'un export"""
    success: bool
    data: Optional[bytes] = None
    filename: Optional[str] = None
    content_type: Optional[str] = None
    error: Optional[str] = None


def format_export_date(value: Any, date_format: str = DEFAULT_DATE_FORMAT) -> Any:
    """Formate une date ISO 8601; toute autre valeur est retournée telle quelle"""
    parsed = parse_datetime(value)
    if parsed is None:
        return value
    return parsed.strftime(date_format)


def prepare_rows(records: List[dict], date_format: str = DEFAULT_DATE_FORMAT) -> List[dict]:
    """Retire les champs techniques et formate les dates"""
    rows = []
    for record in records:
        row = {k: v for k, v in record.items() if k not in EXCLUDED_FIELDS}
        for key in DATE_FIELDS:
            if row.get(key):
                row[key] = format_export_date(row[key], date_format)
        rows.append(row)
    return rows


def resolve_columns(rows: List[dict], headers: Optional[Dict[str, str]] = None) -> List[tuple]:
    """
    Colonnes (clé, libellé) de l'export

    Avec un mapping, ses clés choisissent et ordonnent les colonnes. Sans mapping,
    toutes les clés rencontrées, dans l'ordre de première apparition.
    """
    if headers:
        return list(headers.items())
    keys = []
    for row in rows:
        for key in row:
            if key not in keys:
                keys.append(key)
    return [(key, key) for key in keys]


def cell_text(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def to_csv(records: List[dict], headers: Optional[Dict[str, str]] = None,
           date_format: str = DEFAULT_DATE_FORMAT) -> str:
    """
    Sérialise des documents en CSV

    Args:
        records: Documents à exporter
        headers: Mapping clé -> libellé (optionnel)
        date_format: Format strftime des champs date

    Returns:
        str: Texte CSV préfixé du BOM; chaîne vide si aucun document
    """
    if not records:
        return ''

    rows = prepare_rows(records, date_format)
    columns = resolve_columns(rows, headers)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator=LINE_TERMINATOR)
    writer.writerow([label for _, label in columns])
    for row in rows:
        writer.writerow([cell_text(row.get(key)) for key, _ in columns])

    # Pas de fin de ligne après la dernière ligne
    return BOM + buffer.getvalue()[:-len(LINE_TERMINATOR)]


class CSVGenerator:
    """Générateur de fichiers CSV"""

    def __init__(self, date_format: str = DEFAULT_DATE_FORMAT):
        self.date_format = date_format

    def generate(self, records: List[dict], filename: str,
                 headers: Optional[Dict[str, str]] = None) -> ExportResult:
        if not records:
            return ExportResult(success=False, error="Aucune donnée à exporter")
        text = to_csv(records, headers, self.date_format)
        return ExportResult(
            success=True,
            data=text.encode('utf-8'),
            filename=filename,
            content_type='text/csv; charset=utf-8',
        )


class ExcelGenerator:
    """Générateur de fichiers Excel"""

    def __init__(self, date_format: str = DEFAULT_DATE_FORMAT):
        self.date_format = date_format

    def generate(self, records: List[dict], title: str, filename: str,
                 headers: Optional[Dict[str, str]] = None) -> ExportResult:
        """
        Génère un classeur d'une feuille

        Args:
            records: Documents à exporter
            title: Titre de la feuille (31 caractères max)
            filename: Nom du fichier proposé au téléchargement
            headers: Mapping clé -> libellé (optionnel)

        Returns:
            ExportResult avec le fichier Excel
        """
        if not records:
            return ExportResult(success=False, error="Aucune donnée à exporter")

        try:
            rows = prepare_rows(records, self.date_format)
            columns = resolve_columns(rows, headers)

            wb = openpyxl.Workbook()
            ws = wb.active
            ws.title = title[:31]
            ws.sheet_view.rightToLeft = True

            header_font = Font(bold=True, color="FFFFFF")
            header_fill = PatternFill(start_color="1a365d", end_color="1a365d", fill_type="solid")
            header_alignment = Alignment(horizontal="center", vertical="center")
            thin_border = Border(
                left=Side(style='thin'),
                right=Side(style='thin'),
                top=Side(style='thin'),
                bottom=Side(style='thin')
            )

            for col, (_, label) in enumerate(columns, 1):
                cell = ws.cell(row=1, column=col, value=label)
                cell.font = header_font
                cell.fill = header_fill
                cell.alignment = header_alignment
                cell.border = thin_border

            for row_index, row in enumerate(rows, 2):
                for col, (key, _) in enumerate(columns, 1):
                    value = row.get(key)
                    if not isinstance(value, (int, float)) or isinstance(value, bool):
                        value = cell_text(value)
                    cell = ws.cell(row=row_index, column=col, value=value)
                    cell.border = thin_border

            for col, (key, label) in enumerate(columns, 1):
                width = max([len(str(label))] + [len(cell_text(r.get(key))) for r in rows])
                ws.column_dimensions[get_column_letter(col)].width = min(max(width + 2, 10), 50)

            buffer = io.BytesIO()
            wb.save(buffer)
            buffer.seek(0)

            return ExportResult(
                success=True,
                data=buffer.getvalue(),
                filename=filename,
                content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
            )
        except (ValueError, TypeError) as e:
            logger.error(f"Erreur génération Excel: {e}")
            return ExportResult(success=False, error=str(e))


def with_category_names(products: List[dict], categories: List[dict]) -> List[dict]:
    """Ajoute categoryName aux produits (colonne de l'export produits)"""
    names = {c.get('id'): c.get('name', '') for c in categories}
    return [
        {**p, 'categoryName': names.get(p.get('subCategoryId') or p.get('categoryId'), '')}
        for p in products
    ]


def export_filename(collection: str, extension: str) -> str:
    return f"{collection}-{datetime.now().strftime('%Y%m%d')}.{extension}"
