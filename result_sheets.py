"""Printable result-entry sheets for a periodic test (JSON, CSV and PDF)."""

import csv
import io
from io import StringIO

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from roster import build_matrix, group_info, resolve_subjects

NOT_APPLICABLE = 'N/A'
FONT_NAME = 'Helvetica'
FONT_NAME_BOLD = 'Helvetica-Bold'


def test_subjects_for(periodic_tests, test_name, year, classname):
    """Subjects scheduled across all rows of one test occurrence."""
    return {
        test['subject']
        for test in periodic_tests or []
        if test.get('test_name') == test_name
        and test.get('year') == year
        and test.get('classname') == classname
        and test.get('subject')
    }


def student_display_name(student):
    parts = [student.get('first_name'), student.get('middle_name'), student.get('last_name')]
    return ' '.join(p.strip() for p in parts if p and p.strip())


def build_result_sheet(class_mappings, periodic_tests, students, test_name, year, classname, division):
    """Assemble the subject-applicability sheet for one class-division."""
    occurrence = [
        test for test in periodic_tests or []
        if test.get('test_name') == test_name and test.get('year') == year and test.get('classname') == classname
    ]
    resolution = resolve_subjects(
        class_mappings,
        classname,
        test_subjects_for(occurrence, test_name, year, classname),
    )
    not_applicable = build_matrix(students, group_info(resolution.elective_groups))

    subjects = list(resolution.core_subjects)
    labels = list(resolution.core_subjects)
    for group in resolution.elective_groups:
        for subject in group.subjects:
            if subject not in subjects:
                subjects.append(subject)
                labels.append(f'{subject} ({group.group_name})')

    rows = []
    for student in sorted(students or [], key=lambda s: (s.get('roll_number') or 0, s.get('id') or 0)):
        excluded = not_applicable.get(student['id'], set())
        rows.append({
            'student_id': student['id'],
            'roll_number': student.get('roll_number'),
            'student_name': student_display_name(student),
            'cells': {subject: NOT_APPLICABLE if subject in excluded else '' for subject in subjects},
        })

    return {
        'test_name': test_name,
        'year': year,
        'classname': classname,
        'division': division,
        'test_dates': sorted({test['test_date'] for test in occurrence if test.get('test_date')}),
        'core_subjects': list(resolution.core_subjects),
        'elective_groups': [group._asdict() for group in resolution.elective_groups],
        'subjects': subjects,
        'subject_labels': labels,
        'rows': rows,
    }


def split_marks(sheet, student_id, marks):
    """(kept, skipped): marks for cells the student sits, and the subject names dropped."""
    row = next((r for r in sheet['rows'] if r['student_id'] == student_id), None)
    cells = row['cells'] if row else {}
    kept, skipped = {}, []
    for subject, mark in (marks or {}).items():
        if cells.get(subject) == '':
            kept[subject] = mark
        else:
            skipped.append(subject)
    return kept, skipped


def sheet_filename(sheet, extension):
    parts = [sheet.get('test_name'), sheet.get('classname'), sheet.get('division')]
    stem = '_'.join(''.join(ch if ch.isalnum() else '_' for ch in str(p or '')) for p in parts)
    return f'result_sheet_{stem}.{extension}'


def result_sheet_csv(sheet):
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(['Roll No', 'Student Name'] + sheet['subject_labels'])
    for row in sheet['rows']:
        writer.writerow(
            [row['roll_number'], row['student_name']]
            + [row['cells'][subject] for subject in sheet['subjects']]
        )
    return output.getvalue()


def _column_widths(num_subjects, page_width):
    usable = page_width - 20 * mm
    roll = 15 * mm
    name = 55 * mm
    if not num_subjects:
        return [roll, usable - roll]
    subject = max(18 * mm, (usable - roll - name) / num_subjects)
    return [roll, name] + [subject] * num_subjects


def create_header(sheet):
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle('SheetTitle', parent=styles['Title'], fontName=FONT_NAME_BOLD, fontSize=16, alignment=TA_CENTER)
    info_style = ParagraphStyle('SheetInfo', parent=styles['Normal'], fontName=FONT_NAME, fontSize=10, alignment=TA_CENTER)
    dates = ', '.join(sheet['test_dates']) or '-'
    return [
        Paragraph(f"Test Result Sheet - {sheet['test_name']}", title_style),
        Paragraph(
            f"Year: {sheet['year']} &nbsp;&nbsp; Class: {sheet['classname']} &nbsp;&nbsp; "
            f"Division: {sheet['division']} &nbsp;&nbsp; Test date(s): {dates}",
            info_style,
        ),
        Spacer(1, 6 * mm),
    ]


def create_sheet_table(sheet, page_width):
    header_style = ParagraphStyle('HeaderCell', fontName=FONT_NAME_BOLD, fontSize=8, textColor=colors.white, alignment=TA_CENTER, leading=9)
    name_style = ParagraphStyle('NameCell', fontName=FONT_NAME, fontSize=8, alignment=TA_LEFT, leading=9)

    table_data = [
        [Paragraph('Roll No', header_style), Paragraph('Student Name', header_style)]
        + [Paragraph(label, header_style) for label in sheet['subject_labels']]
    ]
    style_commands = [
        ('BOX', (0, 0), (-1, -1), 1.5, colors.black),
        ('INNERGRID', (0, 0), (-1, -1), 0.5, colors.grey),
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#1f4e79')),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('ALIGN', (0, 1), (0, -1), 'CENTER'),
        ('ALIGN', (2, 1), (-1, -1), 'CENTER'),
        ('FONTNAME', (0, 1), (-1, -1), FONT_NAME),
        ('FONTSIZE', (0, 1), (-1, -1), 8),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]

    for row_index, row in enumerate(sheet['rows'], 1):
        cells = [str(row['roll_number'] or ''), Paragraph(row['student_name'], name_style)]
        for col_index, subject in enumerate(sheet['subjects'], 2):
            value = row['cells'][subject]
            cells.append(value)
            if value == NOT_APPLICABLE:
                style_commands.append(('BACKGROUND', (col_index, row_index), (col_index, row_index), colors.HexColor('#e0e0e0')))
        table_data.append(cells)

    table = Table(table_data, colWidths=_column_widths(len(sheet['subjects']), page_width), repeatRows=1)
    table.setStyle(TableStyle(style_commands))
    return table


def result_sheet_pdf(sheet):
    """Render the sheet as a landscape A4 PDF; returns a rewound BytesIO."""
    pdf_buffer = io.BytesIO()
    page_size = landscape(A4)
    doc = SimpleDocTemplate(
        pdf_buffer,
        pagesize=page_size,
        topMargin=10 * mm,
        bottomMargin=10 * mm,
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        title=f"Result sheet {sheet['test_name']}",
    )
    elements = create_header(sheet)
    elements.append(create_sheet_table(sheet, page_size[0]))
    doc.build(elements)
    pdf_buffer.seek(0)
    return pdf_buffer
