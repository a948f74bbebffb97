"""
Export utilities for ledger reports.
Supports Excel (.xlsx), CSV (.csv), and Text (.txt) formats.

Every report is flattened into rows plus a list of column definitions
('key', 'header', optional 'width' and 'numeric'); the writers only know
about rows and columns.
"""
import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter


class ExportFormat:
    EXCEL = 'xlsx'
    CSV = 'csv'
    TXT = 'txt'

    CHOICES = [EXCEL, CSV, TXT]
    CONTENT_TYPES = {
        EXCEL: 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        CSV: 'text/csv',
        TXT: 'text/plain',
    }


def format_value(value: Any) -> str:
    """Format a value for export."""
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.strftime('%Y-%m-%d %H:%M:%S')
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, bool):
        return 'Yes' if value else 'No'
    return str(value)


def export_to_excel(
    data: list[dict],
    columns: list[dict],
    title: str = 'Export',
    sheet_name: str = 'Data',
) -> bytes:
    """
    Export rows to an Excel workbook.

    Numeric columns are written as numbers so totals can be re-summed in
    the spreadsheet; everything else is written as text.

    Returns:
        Bytes of the .xlsx file
    """
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name[:31]

    header_font = Font(bold=True, color='FFFFFF')
    header_fill = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
    header_alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=len(columns))
    title_cell = ws.cell(row=1, column=1, value=title)
    title_cell.font = Font(bold=True, size=14)
    title_cell.alignment = Alignment(horizontal='center')

    header_row = 3
    for col_idx, col in enumerate(columns, 1):
        cell = ws.cell(row=header_row, column=col_idx, value=col['header'])
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_alignment
        cell.border = thin_border
        ws.column_dimensions[get_column_letter(col_idx)].width = col.get('width', 15)

    for row_idx, row_data in enumerate(data, header_row + 1):
        bold = row_data.get('_bold', False)
        for col_idx, col in enumerate(columns, 1):
            value = row_data.get(col['key'], '')
            if col.get('numeric') and isinstance(value, Decimal):
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.number_format = '#,##0.00'
                cell.alignment = Alignment(horizontal='right')
            else:
                cell = ws.cell(row=row_idx, column=col_idx, value=format_value(value))
            cell.border = thin_border
            if bold:
                cell.font = Font(bold=True)

    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()


def export_to_csv(
    data: list[dict],
    columns: list[dict],
    delimiter: str = ',',
) -> str:
    output = io.StringIO()
    writer = csv.writer(output, delimiter=delimiter, quoting=csv.QUOTE_MINIMAL)
    writer.writerow([col['header'] for col in columns])
    for row_data in data:
        writer.writerow([format_value(row_data.get(col['key'], '')) for col in columns])
    return output.getvalue()


def export_to_txt(
    data: list[dict],
    columns: list[dict],
    separator: str = '  ',
) -> str:
    """
    Export rows as fixed-width text. Numeric columns are right-aligned.
    """
    col_widths = []
    for col in columns:
        width = max(col.get('width', 0), len(col['header']))
        for row_data in data:
            width = max(width, len(format_value(row_data.get(col['key'], ''))))
        col_widths.append(min(width, 50))  # Cap at 50 chars

    lines = [
        separator.join(col['header'].ljust(col_widths[idx]) for idx, col in enumerate(columns)),
        separator.join('-' * width for width in col_widths),
    ]
    for row_data in data:
        parts = []
        for idx, col in enumerate(columns):
            value = format_value(row_data.get(col['key'], ''))
            if len(value) > col_widths[idx]:
                value = value[:col_widths[idx] - 3] + '...'
            parts.append(value.rjust(col_widths[idx]) if col.get('numeric') else value.ljust(col_widths[idx]))
        lines.append(separator.join(parts).rstrip())

    return '\n'.join(lines) + '\n'


# =============================================================================
# Trial Balance
# =============================================================================

TRIAL_BALANCE_COLUMNS = [
    {'key': 'ledger_name', 'header': 'Ledger Name', 'width': 30},
    {'key': 'group_name', 'header': 'Group', 'width': 25},
    {'key': 'nature', 'header': 'Nature', 'width': 12},
    {'key': 'opening_debit', 'header': 'Opening Dr', 'width': 15, 'numeric': True},
    {'key': 'opening_credit', 'header': 'Opening Cr', 'width': 15, 'numeric': True},
    {'key': 'period_debit', 'header': 'Debit', 'width': 15, 'numeric': True},
    {'key': 'period_credit', 'header': 'Credit', 'width': 15, 'numeric': True},
    {'key': 'closing_debit', 'header': 'Closing Dr', 'width': 15, 'numeric': True},
    {'key': 'closing_credit', 'header': 'Closing Cr', 'width': 15, 'numeric': True},
]


def trial_balance_rows(report: dict) -> list[dict]:
    rows = [dict(row) for row in report['ledgers']]
    rows.append({'ledger_name': 'Total', '_bold': True, **report['totals']})
    return rows


# =============================================================================
# Profit & Loss
# =============================================================================

PROFIT_LOSS_COLUMNS = [
    {'key': 'section', 'header': 'Section', 'width': 35},
    {'key': 'group_name', 'header': 'Group', 'width': 25},
    {'key': 'ledger_name', 'header': 'Ledger', 'width': 30},
    {'key': 'amount', 'header': 'Amount', 'width': 15, 'numeric': True},
    {'key': 'previous_amount', 'header': 'Previous', 'width': 15, 'numeric': True},
]


def profit_loss_rows(report: dict) -> list[dict]:
    rows = []

    def add_section(key):
        section = report[key]
        for item in section['items']:
            rows.append({
                'section': section['title'],
                'group_name': item['group_name'],
                'ledger_name': item['ledger_name'],
                'amount': item['amount'],
                'previous_amount': item.get('previous_amount', ''),
            })
        rows.append({
            'section': f"Total {section['title']}",
            'amount': section['total'],
            'previous_amount': section.get('previous_total', ''),
            '_bold': True,
        })

    add_section('income')
    add_section('direct_expenses')
    rows.append({
        'section': 'Gross Profit',
        'amount': report['gross_profit']['amount'],
        'previous_amount': report['gross_profit'].get('previous_amount', ''),
        '_bold': True,
    })
    add_section('indirect_expenses')
    rows.append({
        'section': 'Net Profit',
        'amount': report['net_profit']['amount'],
        'previous_amount': report['net_profit'].get('previous_amount', ''),
        '_bold': True,
    })
    return rows


# =============================================================================
# Balance Sheet
# =============================================================================

BALANCE_SHEET_COLUMNS = [
    {'key': 'section', 'header': 'Section', 'width': 14},
    {'key': 'name', 'header': 'Account', 'width': 40},
    {'key': 'amount', 'header': 'Amount', 'width': 15, 'numeric': True},
    {'key': 'previous_amount', 'header': 'Previous', 'width': 15, 'numeric': True},
]


def _balance_sheet_group_rows(section: str, group: dict, depth: int, rows: list) -> None:
    indent = '  ' * depth
    rows.append({
        'section': section,
        'name': f"{indent}{group['group_name']}",
        'amount': group['total'],
        'previous_amount': group.get('previous_total', ''),
        '_bold': True,
    })
    for ledger in group['ledgers']:
        rows.append({
            'section': section,
            'name': f"{indent}  {ledger['ledger_name']}",
            'amount': ledger['balance'],
            'previous_amount': ledger.get('previous_balance', ''),
        })
    for child in group['children']:
        _balance_sheet_group_rows(section, child, depth + 1, rows)


def balance_sheet_rows(report: dict) -> list[dict]:
    rows = []
    for key, title in (('assets', 'Assets'), ('liabilities', 'Liabilities'), ('equity', 'Equity')):
        section = report[key]
        for group in section['groups']:
            _balance_sheet_group_rows(title, group, 0, rows)
        if key == 'equity':
            rows.append({
                'section': title,
                'name': 'Retained Earnings (Prior Years)',
                'amount': section['retained_earnings'],
                'previous_amount': section.get('previous_retained_earnings', ''),
            })
            rows.append({
                'section': title,
                'name': 'Current Year Profit',
                'amount': section['current_year_profit'],
                'previous_amount': section.get('previous_current_year_profit', ''),
            })
            rows.append({
                'section': title,
                'name': f'Total {title}',
                'amount': section['total_with_profit'],
                'previous_amount': section.get('previous_total_with_profit', ''),
                '_bold': True,
            })
        else:
            rows.append({
                'section': title,
                'name': f'Total {title}',
                'amount': section['total'],
                'previous_amount': section.get('previous_total', ''),
                '_bold': True,
            })
    summary = report['summary']
    rows.append({
        'name': 'Total Liabilities & Equity',
        'amount': summary['total_liabilities_and_equity'],
        'previous_amount': summary.get('previous', {}).get('total_liabilities_and_equity', ''),
        '_bold': True,
    })
    return rows


# =============================================================================
# Cash Flow
# =============================================================================

CASH_FLOW_COLUMNS = [
    {'key': 'section', 'header': 'Section', 'width': 25},
    {'key': 'description', 'header': 'Description', 'width': 40},
    {'key': 'amount', 'header': 'Amount', 'width': 15, 'numeric': True},
]


def cash_flow_rows(report: dict) -> list[dict]:
    rows = [{'description': 'Opening Cash Balance', 'amount': report['opening_balance'], '_bold': True}]
    for key in ('operating', 'investing', 'financing'):
        section = report[key]
        for item in section['items']:
            rows.append({
                'section': section['title'],
                'description': item['description'],
                'amount': item['amount'],
            })
        rows.append({
            'section': section['title'],
            'description': f"Net Cash from {section['title']}",
            'amount': section['total'],
            '_bold': True,
        })
    rows.append({'description': 'Net Cash Flow', 'amount': report['net_cash_flow'], '_bold': True})
    rows.append({'description': 'Closing Cash Balance', 'amount': report['closing_balance'], '_bold': True})
    rows.append({'description': 'Actual Cash Balance', 'amount': report['reconciliation']['actual']})
    rows.append({'description': 'Unreconciled Difference', 'amount': report['reconciliation']['difference']})
    return rows


# =============================================================================
# Aging
# =============================================================================

AGING_COLUMNS = [
    {'key': 'party_name', 'header': 'Party', 'width': 30},
    {'key': 'current', 'header': 'Current', 'width': 14, 'numeric': True},
    {'key': 'days_1_to_30', 'header': '1-30 Days', 'width': 14, 'numeric': True},
    {'key': 'days_31_to_60', 'header': '31-60 Days', 'width': 14, 'numeric': True},
    {'key': 'days_61_to_90', 'header': '61-90 Days', 'width': 14, 'numeric': True},
    {'key': 'over_90', 'header': 'Over 90 Days', 'width': 14, 'numeric': True},
    {'key': 'total', 'header': 'Total', 'width': 15, 'numeric': True},
]


def aging_rows(report: dict) -> list[dict]:
    rows = [dict(party) for party in report['parties']]
    total_row = {'party_name': 'Total', '_bold': True}
    bucket_keys = [col['key'] for col in AGING_COLUMNS[1:-1]]
    for key, bucket in zip(bucket_keys, report['buckets']):
        total_row[key] = bucket['amount']
    total_row['total'] = report['summary']['total_outstanding']
    rows.append(total_row)
    return rows


# =============================================================================
# Ledger Statement
# =============================================================================

LEDGER_STATEMENT_COLUMNS = [
    {'key': 'date', 'header': 'Date', 'width': 12},
    {'key': 'voucher_number', 'header': 'Voucher No', 'width': 18},
    {'key': 'voucher_type', 'header': 'Type', 'width': 12},
    {'key': 'narration', 'header': 'Narration', 'width': 40},
    {'key': 'debit', 'header': 'Debit', 'width': 15, 'numeric': True},
    {'key': 'credit', 'header': 'Credit', 'width': 15, 'numeric': True},
    {'key': 'balance', 'header': 'Balance', 'width': 15, 'numeric': True},
]


def ledger_statement_rows(report: dict) -> list[dict]:
    rows = [dict(row) for row in report['rows']]
    rows.append({
        'narration': 'Total',
        'debit': report['totals']['debit'],
        'credit': report['totals']['credit'],
        'balance': report['closing_balance'],
        '_bold': True,
    })
    return rows


REPORT_EXPORTS = {
    'trial_balance': ('Trial Balance', TRIAL_BALANCE_COLUMNS, trial_balance_rows),
    'profit_loss': ('Profit & Loss', PROFIT_LOSS_COLUMNS, profit_loss_rows),
    'balance_sheet': ('Balance Sheet', BALANCE_SHEET_COLUMNS, balance_sheet_rows),
    'cash_flow': ('Cash Flow', CASH_FLOW_COLUMNS, cash_flow_rows),
    'aging': ('Aging', AGING_COLUMNS, aging_rows),
    'ledger_statement': ('Ledger Statement', LEDGER_STATEMENT_COLUMNS, ledger_statement_rows),
}


def export_report(report_name: str, report: dict, fmt: str) -> bytes | str:
    """
    Flatten a generated report and render it.

    Args:
        report_name: Key of REPORT_EXPORTS (e.g. 'trial_balance')
        report: The dict returned by the matching generator
        fmt: One of ExportFormat.CHOICES

    Returns:
        bytes for xlsx, str for csv and txt

    Raises:
        ValueError: Unknown report or format
    """
    if report_name not in REPORT_EXPORTS:
        raise ValueError(f"Invalid report: {report_name}. Must be one of {sorted(REPORT_EXPORTS)}")
    if fmt not in ExportFormat.CHOICES:
        raise ValueError(f"Invalid format: {fmt}. Must be one of {ExportFormat.CHOICES}")

    title, columns, flatten = REPORT_EXPORTS[report_name]
    rows = flatten(report)

    if fmt == ExportFormat.EXCEL:
        return export_to_excel(rows, columns, title=title, sheet_name=title)
    if fmt == ExportFormat.CSV:
        return export_to_csv(rows, columns)
    return export_to_txt(rows, columns)
