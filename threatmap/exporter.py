"""Spreadsheet (xlsx) and CSV export of analyzed threats."""

import csv
import io
from pathlib import Path
from typing import Optional, Union
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .config import Settings, get_settings
from .graph import ComponentGraph
from .logging_config import get_logger
from .schemas import AnalyzedThreat, StrideCategory, TargetKind, display_label
from .stride import summarize

logger = get_logger(__name__)


def _solid(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type='solid')


class TabularExporter:
    """
    Cross-referenced workbook and CSV for one analyzed graph.

    The Diagram ID column of every sheet uses the same identifiers as the
    rendered diagrams and their legends.
    """

    THREAT_COLUMNS = [
        'Diagram ID',
        'Component/System',
        'Threat Category',
        'Threat Description',
        'Vulnerability',
        'Attack Vector',
        'Threat Actor',
        'Skills Required',
        'Complexity',
        'Likelihood (Pre-Control)',
        'Impact (CIA)',
        'Existing Controls',
        'Risk After Existing Controls',
        'Gap/Additional Control Recommended',
        'Final Risk After Recommendations',
        'Comments',
        'Commented By',
        'Ticket Reference',
        'CWE IDs',
        'ATT&CK Techniques',
        'Status',
    ]

    CSV_COLUMNS = [
        'Diagram ID',
        'Component/System',
        'Threat Category',
        'Threat Description',
        'Likelihood (Pre-Control)',
        'Impact (CIA)',
        'Risk Score',
        'Risk Level',
        'Final Risk After Recommendations',
        'Status',
    ]

    COMPONENT_COLUMNS = [
        'Diagram ID', 'Component ID', 'Name', 'Type', 'Technology', 'Criticality',
        'Data Classification', 'Trust Boundary', 'Threats',
    ]

    FLOW_COLUMNS = [
        'Diagram ID', 'Flow ID', 'Source', 'Target', 'Label', 'Protocol', 'Data Type',
        'Encrypted', 'Authenticated', 'Crosses Trust Boundary',
    ]

    MAPPING_COLUMNS = ['Diagram ID', 'Element', 'Element ID', 'Name', 'Type']

    RISK_COLORS = {
        'critical': 'FFDC2626',
        'high': 'FFF97316',
        'medium': 'FFEAB308',
        'low': 'FF22C55E',
    }

    STATUS_COLORS = {
        'identified': 'FFE53E3E',
        'in progress': 'FFED8936',
        'in_progress': 'FFED8936',
        'mitigated': 'FF38A169',
        'accepted': 'FF3182CE',
        'transferred': 'FF805AD5',
    }

    # (minimum count, fill) for the STRIDE matrix, checked top-down
    HEAT_COLORS = [
        (3, 'FFFECACA'),
        (1, 'FFFEF3C7'),
    ]

    HEADER_FILL = 'FF1F2937'
    RISK_COLUMNS = ('Risk After Existing Controls', 'Final Risk After Recommendations')

    def __init__(self, graph: ComponentGraph, threats: list[AnalyzedThreat], settings: Optional[Settings] = None):
        self.graph = graph
        self.threats = list(threats)
        self.settings = settings or get_settings()

    # Palettes

    def risk_fill(self, value: Optional[str]) -> Optional[PatternFill]:
        color = self.RISK_COLORS.get(str(value or '').strip().lower())
        return _solid(color) if color else None

    def status_fill(self, value: Optional[str]) -> Optional[PatternFill]:
        color = self.STATUS_COLORS.get(str(value or '').strip().lower())
        return _solid(color) if color else None

    def heat_fill(self, count: int) -> Optional[PatternFill]:
        for minimum, color in self.HEAT_COLORS:
            if count >= minimum:
                return _solid(color)
        return None

    # Rows

    def threat_row(self, threat: AnalyzedThreat) -> list[str]:
        return [
            threat.diagramId or '',
            threat.targetName,
            threat.strideCategory.label,
            threat.description,
            threat.vulnerability,
            threat.attackVector,
            threat.threatActor,
            threat.skillsRequired,
            threat.complexity,
            display_label(threat.likelihood.value),
            threat.impactCIA,
            threat.existingControls or '',
            display_label(threat.riskAfterExisting.value),
            threat.gapRecommendation or '',
            display_label(threat.finalRisk.value),
            threat.comments or '',
            threat.commentedBy or '',
            threat.ticketRef or '',
            ', '.join(threat.cweIds),
            ', '.join(threat.attackTechniqueIds),
            display_label(threat.status.value),
        ]

    def threat_rows(self) -> list[list[str]]:
        return [self.threat_row(t) for t in self.threats]

    def csv_rows(self) -> list[list]:
        return [
            [
                t.diagramId or '',
                t.targetName,
                t.strideCategory.label,
                t.description,
                display_label(t.likelihood.value),
                t.impactCIA,
                t.riskScore,
                display_label(t.riskLevel.value),
                display_label(t.finalRisk.value),
                display_label(t.status.value),
            ]
            for t in self.threats
        ]

    def coverage_matrix(self) -> list[tuple[str, str, dict[StrideCategory, int]]]:
        """(diagram id, name, counts per category) per component, plus one row for all data flows."""
        rows = []
        for component in self.graph.components:
            counts = {category: 0 for category in StrideCategory}
            for threat in self.threats:
                if threat.targetKind == TargetKind.COMPONENT and threat.targetId == component.id:
                    counts[threat.strideCategory] += 1
            rows.append((component.diagramId or component.id, component.name, counts))

        flow_counts = {category: 0 for category in StrideCategory}
        for threat in self.threats:
            if threat.targetKind == TargetKind.DATA_FLOW:
                flow_counts[threat.strideCategory] += 1
        rows.append(('', 'Data Flows', flow_counts))
        return rows

    # Workbook

    def to_workbook(self) -> Workbook:
        workbook = Workbook()
        workbook.properties.creator = self.settings.workbook_creator
        workbook.properties.title = self.graph.model.title

        self._threat_sheet(workbook.active)
        self._component_sheet(workbook.create_sheet('Components'))
        self._flow_sheet(workbook.create_sheet('Data Flows'))
        self._matrix_sheet(workbook.create_sheet('STRIDE Matrix'))
        self._mapping_sheet(workbook.create_sheet('Diagram ID Mapping'))
        self._summary_sheet(workbook.create_sheet('Summary'))
        return workbook

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.to_workbook().save(buffer)
        return buffer.getvalue()

    def save(self, output_path: Union[str, Path]) -> Path:
        output_path = Path(output_path)
        self.to_workbook().save(output_path)
        logger.info(f"Workbook with {len(self.threats)} threats saved to {output_path}")
        return output_path

    def _threat_sheet(self, sheet: Worksheet) -> None:
        sheet.title = 'Threats'
        self._write_header(sheet, self.THREAT_COLUMNS)
        risk_columns = [self.THREAT_COLUMNS.index(name) + 1 for name in self.RISK_COLUMNS]
        status_column = self.THREAT_COLUMNS.index('Status') + 1

        for row_index, values in enumerate(self.threat_rows(), start=2):
            for col, value in enumerate(values, start=1):
                cell = sheet.cell(row=row_index, column=col, value=value)
                cell.alignment = Alignment(vertical='top', wrap_text=True)
            for col in risk_columns:
                self._fill(sheet.cell(row=row_index, column=col), self.risk_fill(values[col - 1]))
            self._fill(sheet.cell(row=row_index, column=status_column), self.status_fill(values[status_column - 1]))

        sheet.auto_filter.ref = f'A1:{get_column_letter(len(self.THREAT_COLUMNS))}{max(len(self.threats) + 1, 1)}'
        self._set_widths(sheet, {4: 60, 5: 36, 6: 36, 12: 36, 14: 48})

    def _component_sheet(self, sheet: Worksheet) -> None:
        self._write_header(sheet, self.COMPONENT_COLUMNS)
        criticality_column = self.COMPONENT_COLUMNS.index('Criticality') + 1
        for row_index, component in enumerate(self.graph.components, start=2):
            boundary_id = self.graph.boundary_of(component.id)
            boundary = self.graph.boundary(boundary_id).name if boundary_id else ''
            threat_count = sum(
                1 for t in self.threats
                if t.targetKind == TargetKind.COMPONENT and t.targetId == component.id
            )
            values = [
                component.diagramId or component.id,
                component.id,
                component.name,
                component.type,
                component.technology or '',
                display_label(component.criticality.value),
                component.dataClassification or '',
                boundary,
                threat_count,
            ]
            for col, value in enumerate(values, start=1):
                sheet.cell(row=row_index, column=col, value=value)
            self._fill(
                sheet.cell(row=row_index, column=criticality_column),
                self.risk_fill(component.criticality.value),
            )
        self._set_widths(sheet, {3: 30, 4: 20})

    def _flow_sheet(self, sheet: Worksheet) -> None:
        self._write_header(sheet, self.FLOW_COLUMNS)
        for row_index, flow in enumerate(self.graph.data_flows, start=2):
            source = self.graph.component(flow.sourceId)
            target = self.graph.component(flow.targetId)
            values = [
                flow.diagramId or flow.id,
                flow.id,
                source.diagramId or source.id,
                target.diagramId or target.id,
                flow.label,
                flow.protocol or '',
                flow.dataType or '',
                'Yes' if flow.encrypted else 'No',
                'Yes' if flow.authenticated else 'No',
                'Yes' if flow.crossesTrustBoundary else 'No',
            ]
            for col, value in enumerate(values, start=1):
                sheet.cell(row=row_index, column=col, value=value)
        self._set_widths(sheet, {5: 30})

    def _matrix_sheet(self, sheet: Worksheet) -> None:
        categories = list(StrideCategory)
        self._write_header(sheet, ['Diagram ID', 'Component'] + [c.label for c in categories] + ['Total'])

        totals = {category: 0 for category in categories}
        row_index = 2
        for diagram_id, name, counts in self.coverage_matrix():
            sheet.cell(row=row_index, column=1, value=diagram_id)
            sheet.cell(row=row_index, column=2, value=name)
            for offset, category in enumerate(categories):
                count = counts[category]
                totals[category] += count
                cell = sheet.cell(row=row_index, column=3 + offset, value=count)
                self._fill(cell, self.heat_fill(count))
            sheet.cell(row=row_index, column=3 + len(categories), value=sum(counts.values()))
            row_index += 1

        sheet.cell(row=row_index, column=2, value='TOTAL').font = Font(bold=True)
        for offset, category in enumerate(categories):
            sheet.cell(row=row_index, column=3 + offset, value=totals[category]).font = Font(bold=True)
        sheet.cell(row=row_index, column=3 + len(categories), value=sum(totals.values())).font = Font(bold=True)
        self._set_widths(sheet, {2: 30})

    def _mapping_sheet(self, sheet: Worksheet) -> None:
        self._write_header(sheet, self.MAPPING_COLUMNS)
        row_index = 2
        for component in self.graph.components:
            values = [component.diagramId or component.id, 'Component', component.id, component.name, component.type]
            for col, value in enumerate(values, start=1):
                sheet.cell(row=row_index, column=col, value=value)
            row_index += 1
        for flow in self.graph.data_flows:
            values = [flow.diagramId or flow.id, 'Data Flow', flow.id, flow.label, flow.protocol or '']
            for col, value in enumerate(values, start=1):
                sheet.cell(row=row_index, column=col, value=value)
            row_index += 1
        self._set_widths(sheet, {4: 30})

    def _summary_sheet(self, sheet: Worksheet) -> None:
        summary = summarize(self.threats)
        sheet.cell(row=1, column=1, value=self.graph.model.title).font = Font(bold=True, size=14)
        sheet.cell(row=2, column=1, value='Version')
        sheet.cell(row=2, column=2, value=self.graph.model.version)
        sheet.cell(row=3, column=1, value='Total Threats')
        sheet.cell(row=3, column=2, value=summary.total)

        row = 5
        sheet.cell(row=row, column=1, value='STRIDE Category').font = Font(bold=True)
        sheet.cell(row=row, column=2, value='Threats').font = Font(bold=True)
        for category in StrideCategory:
            row += 1
            sheet.cell(row=row, column=1, value=category.label)
            sheet.cell(row=row, column=2, value=summary.byCategory[category.value])

        row += 2
        sheet.cell(row=row, column=1, value='Risk Level').font = Font(bold=True)
        sheet.cell(row=row, column=2, value='Threats').font = Font(bold=True)
        for level, count in summary.byRiskLevel.items():
            row += 1
            cell = sheet.cell(row=row, column=1, value=display_label(level))
            self._fill(cell, self.risk_fill(level))
            sheet.cell(row=row, column=2, value=count)
        self._set_widths(sheet, {1: 28})

    def _write_header(self, sheet: Worksheet, columns: list[str]) -> None:
        for col, name in enumerate(columns, start=1):
            cell = sheet.cell(row=1, column=col, value=name)
            cell.font = Font(bold=True, color='FFFFFFFF')
            cell.fill = _solid(self.HEADER_FILL)
            cell.alignment = Alignment(vertical='center', wrap_text=True)
        sheet.freeze_panes = 'A2'
        for col in range(1, len(columns) + 1):
            sheet.column_dimensions[get_column_letter(col)].width = 18

    @staticmethod
    def _set_widths(sheet: Worksheet, widths: dict[int, int]) -> None:
        for col, width in widths.items():
            sheet.column_dimensions[get_column_letter(col)].width = width

    @staticmethod
    def _fill(cell, fill: Optional[PatternFill]) -> None:
        if fill is not None:
            cell.fill = fill

    # CSV

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL)
        writer.writerow(self.CSV_COLUMNS)
        writer.writerows(self.csv_rows())
        return buffer.getvalue()

    def save_csv(self, output_path: Union[str, Path]) -> Path:
        output_path = Path(output_path)
        with open(output_path, 'w', encoding='utf-8', newline='') as f:
            f.write(self.to_csv())
        logger.info(f"CSV with {len(self.threats)} threats saved to {output_path}")
        return output_path
