"""
Export tests.

Verifies:
- CSV: BOM prefix, CRLF line ends, excluded fields, date formatting, empty input
- Header mapping selects and orders columns
- Excel workbook content
- Category names joined into product rows
"""

import io

import openpyxl

from app.services.export_service import (
    BOM, CSVGenerator, ExcelGenerator, to_csv, with_category_names
)


CUSTOMERS = [
    {'id': 'cust-1', 'name': 'علی', 'phone': '0912', 'email': None, 'storeId': 'stor-1'},
    {'id': 'cust-2', 'name': 'Reza, Jr.', 'address': 'تهران', 'vip': True},
]


class TestCsv:

    def test_empty_input(self):
        assert to_csv([]) == ''

    def test_raw_keys_in_first_seen_order(self):
        text = to_csv(CUSTOMERS)

        assert text.startswith(BOM)
        lines = text[len(BOM):].split('\r\n')
        assert lines == [
            'name,phone,email,address,vip',
            'علی,0912,,,',
            '"Reza, Jr.",,,تهران,true',
        ]
        assert not text.endswith('\r\n')

    def test_header_mapping_selects_columns(self):
        text = to_csv(CUSTOMERS, headers={'phone': 'تلفن', 'name': 'نام'})
        lines = text[len(BOM):].split('\r\n')
        assert lines == ['تلفن,نام', '0912,علی', ',"Reza, Jr."']

    def test_dates_are_formatted(self):
        invoices = [{
            'id': 'invo-1', 'invoiceNumber': 'DEC-00001', 'customerId': 'cust-1',
            'date': '2024-05-01T10:00:00Z', 'dueDate': 'not a date',
            'items': [{'productId': 'prod-1'}], 'total': 1000,
        }]
        lines = to_csv(invoices, date_format='%Y/%m/%d')[len(BOM):].split('\r\n')
        assert lines == ['invoiceNumber,date,dueDate,total', 'DEC-00001,2024/05/01,not a date,1000']

    def test_generator_result(self):
        result = CSVGenerator().generate(CUSTOMERS, 'customers.csv')
        assert result.success
        assert result.data.startswith(BOM.encode('utf-8'))
        assert result.content_type.startswith('text/csv')
        assert not CSVGenerator().generate([], 'empty.csv').success


class TestExcel:

    def test_workbook_content(self):
        result = ExcelGenerator().generate(CUSTOMERS, 'customers', 'customers.xlsx',
                                           headers={'name': 'نام', 'vip': 'VIP'})
        assert result.success

        sheet = openpyxl.load_workbook(io.BytesIO(result.data)).active
        assert sheet.title == 'customers'
        assert sheet.sheet_view.rightToLeft
        rows = [[cell.value for cell in row] for row in sheet.iter_rows()]
        assert rows[0] == ['نام', 'VIP']
        assert rows[1][0] == 'علی'
        assert rows[2] == ['Reza, Jr.', 'true']

    def test_numbers_stay_numeric(self):
        result = ExcelGenerator().generate([{'name': 'F47', 'price': 100000}], 'products', 'p.xlsx')
        sheet = openpyxl.load_workbook(io.BytesIO(result.data)).active
        assert sheet.cell(row=2, column=2).value == 100000

    def test_empty_input(self):
        assert not ExcelGenerator().generate([], 'x', 'x.xlsx').success


def test_with_category_names():
    products = [
        {'id': 'prod-1', 'name': 'F47', 'subCategoryId': 'cate-2'},
        {'id': 'prod-2', 'name': 'قدیمی', 'categoryId': 'cate-1'},
        {'id': 'prod-3', 'name': 'بدون دسته'},
    ]
    categories = [{'id': 'cate-1', 'name': 'کناف'}, {'id': 'cate-2', 'name': 'پروفیل'}]

    named = with_category_names(products, categories)

    assert [p['categoryName'] for p in named] == ['پروفیل', 'کناف', '']
    assert 'categoryName' not in products[0]
