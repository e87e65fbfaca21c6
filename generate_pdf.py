#!/usr/bin/env python3
"""
Generate a printable Family Book PDF for one person.

Usage:
    ./generate_pdf.py PID                      # Family book from local JSON
    ./generate_pdf.py PID --from-supabase      # Fetches from Supabase first
    ./generate_pdf.py PID --show-spouse --generations 4 --html book.html
"""

import argparse
import html as html_module
import sys
from collections import defaultdict
from datetime import datetime
from pathlib import Path

try:
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.units import cm
    from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak
    from reportlab.lib.enums import TA_CENTER
except ImportError:
    print("Error: reportlab not installed. Run: pip install reportlab")
    sys.exit(1)

from chart_html import build_page_html
from family_book import ChartBlock, ChartOptions, FamilyBook, PersonBox, TreePreferences
from tree_store import FamilyTree, get_supabase_client, load_data, load_secrets

BASE_DIR = Path(__file__).parent
DATA_DIR = BASE_DIR / "data"

ANCESTOR_LABELS = {2: "Parents", 3: "Grandparents", 4: "Great-grandparents"}


def box_label(box: PersonBox) -> str:
    if box.person is None:
        return ""
    if not box.visible:
        return "Private"
    label = box.person.full_name
    if box.show_full and box.person.lifespan:
        label += f" ({box.person.lifespan})"
    return label


def descendancy_rows(block: ChartBlock) -> list:
    """[generation label, names] rows for the descendants in a chart block."""
    by_generation = defaultdict(list)
    if block.descendancy is not None:
        for box in block.descendancy.nodes(PersonBox):
            label = box_label(box)
            if not label:
                continue
            if box.role == "spouse":
                label = f"Spouse: {label}"
            by_generation[box.generation].append(label)
    return [[f"Generation {gen}", "<br/>".join(html_module.escape(n) for n in names)]
            for gen, names in sorted(by_generation.items())]


def pedigree_rows(block: ChartBlock) -> list:
    """[generation label, names] rows for the ancestors in a chart block."""
    by_generation = defaultdict(list)
    if block.pedigree is not None:
        for box in block.pedigree.nodes(PersonBox):
            label = box_label(box)
            if label:
                by_generation[box.generation].append(label)
    rows = []
    for gen, names in sorted(by_generation.items()):
        heading = ANCESTOR_LABELS.get(gen, f"Generation {gen}")
        rows.append([heading, "<br/>".join(html_module.escape(n) for n in names)])
    return rows


def _section_table(title: str, rows: list, styles, header_color: str) -> Table:
    body = styles["BodyText"]
    data = [[title, ""]] + [[Paragraph(label, body), Paragraph(names, body)] for label, names in rows]
    if not rows:
        data.append(["-", ""])
    table = Table(data, colWidths=[4*cm, 15*cm], repeatRows=1)
    table.setStyle(TableStyle([
        ('SPAN', (0, 0), (-1, 0)),
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(header_color)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, 0), 10),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#e2e8f0')),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    return table


def generate_pdf(blocks: list, title: str, output_path) -> Path:
    """Write one page per chart block: heading, descendants and ancestors."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    doc = SimpleDocTemplate(
        str(output_path),
        pagesize=A4,
        rightMargin=1*cm,
        leftMargin=1*cm,
        topMargin=1*cm,
        bottomMargin=1*cm,
        title=title,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=24,
        spaceAfter=20,
        alignment=TA_CENTER,
        textColor=colors.HexColor('#1e293b')
    )
    heading_style = ParagraphStyle(
        'CustomHeading',
        parent=styles['Heading2'],
        fontSize=16,
        spaceBefore=10,
        spaceAfter=10,
        textColor=colors.HexColor('#334155')
    )

    content = [
        Paragraph(html_module.escape(title), title_style),
        Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles['Normal']),
        Spacer(1, 0.5*cm),
    ]

    for i, block in enumerate(blocks):
        if i > 0:
            content.append(PageBreak())
        content.append(Paragraph(f"Family of {html_module.escape(block.person.full_name)}", heading_style))
        content.append(_section_table("Descendants", descendancy_rows(block), styles, '#1e293b'))
        content.append(Spacer(1, 0.4*cm))
        content.append(_section_table("Ancestors", pedigree_rows(block), styles, '#22c55e'))

    if not blocks:
        content.append(Paragraph("There is nobody to show for this person.", styles['Italic']))

    doc.build(content)
    return output_path


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a family book to PDF.")
    parser.add_argument("pid", help="Identifier of the individual at the top of the book.")
    parser.add_argument("--from-supabase", action="store_true", help="Load the tree from Supabase.")
    parser.add_argument("--descent", type=int, default=5, help="Descent steps (0-9).")
    parser.add_argument("--generations", type=int, default=2, help="Ancestor generations.")
    parser.add_argument("--box-width", type=int, default=100, help="Box width percentage (50-300).")
    parser.add_argument("--show-spouse", action="store_true", help="Show spouses of the individual.")
    parser.add_argument("--compact", action="store_true", help="Compact boxes without details.")
    parser.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output PDF path (default: data/familybook_<pid>.pdf).",
    )
    parser.add_argument("--html", type=Path, default=None, help="Also write the HTML chart here.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    print("=" * 50)
    print("Family Book PDF Generator")
    print("=" * 50)

    secrets = load_secrets()
    prefs = TreePreferences.from_secrets(secrets)

    client = None
    if args.from_supabase:
        client = get_supabase_client(secrets.get('SUPABASE_URL'), secrets.get('SUPABASE_KEY'))
        if client is None:
            print("Warning: SUPABASE_URL or SUPABASE_KEY not found in secrets, using local JSON")
    data = load_data(client)
    if not data.get('people'):
        print("Error: No data source available")
        return 1
    print(f"Loaded {len(data['people'])} people")

    options = ChartOptions.from_params({
        "pid": args.pid,
        "show_full": 0 if args.compact else 1,
        "show_spouse": int(args.show_spouse),
        "descent": args.descent,
        "generations": args.generations,
        "box_width": args.box_width,
    }, prefs)

    tree = FamilyTree(data, hide_living=prefs.hide_living)
    book = FamilyBook(tree, options)
    if book.root is None:
        print(f"Error: Individual {args.pid} not found")
        return 1

    blocks = book.render()
    output_path = args.output or DATA_DIR / f"familybook_{options.pid}.pdf"
    output_path = generate_pdf(blocks, book.title, output_path)
    print(f"\nPDF created: {output_path} ({len(blocks)} chart pages)")
    print(f"File size: {output_path.stat().st_size / 1024:.1f} KB")

    if args.html:
        args.html.parent.mkdir(parents=True, exist_ok=True)
        args.html.write_text(build_page_html(blocks, book.title), encoding="utf-8")
        print(f"HTML created: {args.html}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
