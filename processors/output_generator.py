"""
Output Generator - JSON envelopes and Excel review workbooks for extraction results

The JSON envelope is what the CLI prints and the HTTP API returns. The
review workbook lists every record with its confidence and warnings, rows
needing review highlighted, followed by a summary sheet.
"""

import io
import json
import os
import sys
from datetime import datetime
from typing import Dict, List, Union

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils.dataframe import dataframe_to_rows

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from models import EmailFact, ParseResult, QuoteLineItem, SurveyTask, Transaction

HEADER_FILL = PatternFill(start_color='4472C4', end_color='4472C4', fill_type='solid')
REVIEW_FILL = PatternFill(start_color='FFFF00', end_color='FFFF00', fill_type='solid')
MAX_COLUMN_WIDTH = 50


def _record_row(record) -> Dict:
    row = {
        'ID': record.id,
        'Date': record.date,
        'Description': record.description,
        'Amount': record.amount,
        'Category': record.category,
        'Confidence': record.confidence,
    }
    if isinstance(record, Transaction):
        row['Direction'] = record.direction
        row['Balance'] = record.balance if record.balance is not None else ''
        row['Bank Category'] = record.bank_category or ''
        row['Source'] = record.source
    elif isinstance(record, QuoteLineItem):
        row['Quantity'] = record.quantity if record.quantity is not None else ''
        row['Unit Price'] = record.unit_price if record.unit_price is not None else ''
        row['Notes'] = record.notes or ''
    elif isinstance(record, SurveyTask):
        row['Timeframe'] = record.timeframe
        row['Priority'] = record.priority
        row['Condition Rating'] = record.condition_rating or ''
        row['Contractor'] = record.recommended_contractor or ''
        row['Impact'] = record.impact
    elif isinstance(record, EmailFact):
        row['Kind'] = record.kind
        row['Type'] = record.price_type or record.date_type or ''
        row['Contact'] = ', '.join(filter(None, (record.name, record.company, record.phone, record.email)))
    row['Warnings'] = '; '.join(record.warnings)
    row['Needs Review'] = 'Yes' if record.warnings else ''
    return row


class OutputGenerator:
    """Render ParseResults for people and programs"""

    def __init__(self, indent: int = 2):
        self.indent = indent
        self.generated_files: List[str] = []

    def build_envelope(self, result: ParseResult, summary: Dict = None) -> Dict:
        envelope = result.to_dict()
        if summary is not None:
            envelope['summary'] = summary
        return envelope

    def to_json(self, result: ParseResult, summary: Dict = None) -> str:
        return json.dumps(self.build_envelope(result, summary), indent=self.indent,
                          ensure_ascii=False, default=str)

    def build_dataframe(self, result: ParseResult) -> pd.DataFrame:
        rows = [_record_row(record) for record in result.records]
        if not rows:
            return pd.DataFrame(columns=['ID', 'Date', 'Description', 'Amount', 'Category',
                                         'Confidence', 'Warnings', 'Needs Review'])
        return pd.DataFrame(rows)

    def write_review_workbook(self, result: ParseResult, target: Union[str, io.BytesIO],
                              summary: Dict = None, sheet_name: str = 'Records') -> Union[str, io.BytesIO]:
        """
        Write records to a formatted workbook.

        Args:
            result: Processed ParseResult
            target: File path or a BytesIO buffer
            summary: Optional summary dict written to a second sheet
            sheet_name: Title of the records sheet

        Returns:
            The target, rewound when it is a buffer
        """
        wb = Workbook()
        ws = wb.active
        ws.title = sheet_name
        df = self.build_dataframe(result)
        review_column = list(df.columns).index('Needs Review') + 1

        for r_idx, row in enumerate(dataframe_to_rows(df, index=False, header=True), 1):
            for c_idx, value in enumerate(row, 1):
                cell = ws.cell(row=r_idx, column=c_idx, value=value)
                if r_idx == 1:
                    cell.font = Font(bold=True, color='FFFFFF')
                    cell.fill = HEADER_FILL
                    cell.alignment = Alignment(horizontal='center')
            if r_idx > 1 and row[review_column - 1] == 'Yes':
                for col in range(1, len(row) + 1):
                    ws.cell(row=r_idx, column=col).fill = REVIEW_FILL

        self._fit_columns(ws)
        ws.auto_filter.ref = ws.dimensions
        ws.freeze_panes = 'A2'

        self._write_summary_sheet(wb, result, summary)
        wb.save(target)

        if isinstance(target, str):
            self.generated_files.append(target)
            print(f"[INFO] Review workbook written to {target}", flush=True)
        else:
            target.seek(0)
        return target

    def review_workbook_bytes(self, result: ParseResult, summary: Dict = None) -> io.BytesIO:
        return self.write_review_workbook(result, io.BytesIO(), summary)

    def _write_summary_sheet(self, wb: Workbook, result: ParseResult, summary: Dict = None):
        ws = wb.create_sheet('Summary')
        ws['A1'] = 'Document Extraction - Review Summary'
        ws['A1'].font = Font(bold=True, size=14)
        ws['A2'] = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"

        rows = [
            ('Source Type', result.metadata.get('sourceType', '')),
            ('Strategy', result.metadata.get('strategy', '')),
            ('Bank', result.metadata.get('bank', '')),
            ('Success', 'Yes' if result.success else 'No'),
            ('Records', len(result.records)),
        ]
        if summary:
            rows.extend([
                ('Needs Review', summary.get('needs_review', 0)),
                ('Total Debits', f"£{summary.get('total_debits', 0):,.2f}"),
                ('Total Credits', f"£{summary.get('total_credits', 0):,.2f}"),
            ])

        row = 4
        for label, value in rows:
            ws[f'A{row}'] = label
            ws[f'B{row}'] = value
            row += 1

        for heading, messages in (('Errors', result.errors), ('Warnings', result.warnings)):
            if not messages:
                continue
            row += 1
            ws[f'A{row}'] = heading
            ws[f'A{row}'].font = Font(bold=True)
            for message in messages:
                row += 1
                ws[f'A{row}'] = message

        ws.column_dimensions['A'].width = 30
        ws.column_dimensions['B'].width = 20

    @staticmethod
    def _fit_columns(ws):
        for column in ws.columns:
            column_letter = column[0].column_letter
            max_length = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
            ws.column_dimensions[column_letter].width = min(max_length + 2, MAX_COLUMN_WIDTH)

    def get_generated_files(self) -> List[str]:
        return self.generated_files
