"""
Family Book - HTML output.

Serializes the layout tree from family_book into nested tables, with the
connector glyphs drawn by Pillow and embedded as data URIs.
"""

import base64
import html as html_module
import io
from functools import lru_cache
from pathlib import Path

from PIL import Image

from family_book import ChartBlock, Cell, EmptyBox, Line, PersonBox, Row, Spacer, Table

# Paths
BASE_DIR = Path(__file__).parent
TEMPLATE_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

LINE_COLOR = (81, 81, 81, 255)
THUMB_SIZE = (40, 50)
PAGE_BREAK = '<br><br><hr style="page-break-after:always;"><br><br>'


# =============================================================================
# Images
# =============================================================================

def _png_data_uri(img: Image.Image) -> str:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    b64 = base64.b64encode(buf.getvalue()).decode("utf-8")
    return f"data:image/png;base64,{b64}"


@lru_cache(maxsize=None)
def glyph_uri(name: str) -> str:
    """Data URI of a connector glyph: "vline", "hline" or "spacer"."""
    if name == "vline":
        img = Image.new("RGBA", (3, 3), (0, 0, 0, 0))
        img.paste(LINE_COLOR, (1, 0, 2, 3))
    elif name == "hline":
        img = Image.new("RGBA", (3, 3), (0, 0, 0, 0))
        img.paste(LINE_COLOR, (0, 1, 3, 2))
    elif name == "spacer":
        img = Image.new("RGBA", (1, 1), (0, 0, 0, 0))
    else:
        raise ValueError(f"Unknown glyph: {name}")
    return _png_data_uri(img)


def resolve_image_path(image_path: str | None) -> Path | None:
    if image_path:
        candidate = BASE_DIR / image_path
        if candidate.exists():
            return candidate
    return None


@lru_cache(maxsize=256)
def thumbnail_uri(path: Path) -> str:
    """Shrink a person's photo to box size and return it as a data URI."""
    with Image.open(path) as img:
        img = img.convert("RGB")
        img.thumbnail(THUMB_SIZE)
        return _png_data_uri(img)


# =============================================================================
# Layout Tree
# =============================================================================

def _px(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else str(round(value, 2))


def _attr(name: str, value) -> str:
    if value is None or value == "":
        return ""
    return f' {name}="{html_module.escape(str(value), quote=True)}"'


def render_person_box(box: PersonBox) -> str:
    style = f"width:{_px(box.width)}px; min-height:{_px(box.height)}px;"
    person = box.person
    if person is None:
        return f'<div class="person_box_template" style="{style}"></div>'

    css = {"male": "person_box", "female": "person_boxF"}.get(person.gender, "person_boxNN")
    if not box.show_full:
        css += " compact"
    if box.role == "spouse":
        css += " spouse"

    parts = [f'<div class="{css}"{_attr("id", "box_" + person.xref)} style="{style}">']
    if box.visible:
        if box.show_full:
            photo = resolve_image_path(person.image_path)
            if photo is not None:
                parts.append(f'<img class="pedigree_image" src="{thumbnail_uri(photo)}" alt="">')
        parts.append(f'<div class="name1">{html_module.escape(person.full_name)}</div>')
        if box.show_full and person.lifespan:
            parts.append(f'<div class="details1">{html_module.escape(person.lifespan)}</div>')
    else:
        parts.append('<div class="name1">Private</div>')
    parts.append("</div>")
    return "".join(parts)


def render_line(line: Line) -> str:
    attrs = (
        _attr("class", line.css_class)
        + _attr("id", line.anchor)
        + f' src="{glyph_uri(line.kind)}"'
        + (_attr("width", _px(line.width)) if line.width is not None else "")
        + _attr("height", _px(line.height))
    )
    return f'<img{attrs} alt="">'


def render_cell(cell: Cell) -> str:
    attrs = _attr("class", cell.css_class)
    if cell.width is not None:
        attrs += _attr("width", _px(cell.width))
    if cell.background:
        attrs += f' style="background: url({glyph_uri(cell.background)});"'
    return f"<td{attrs}>{''.join(render_node(node) for node in cell.content)}</td>"


def render_row(row: Row) -> str:
    return f"<tr>{''.join(render_cell(cell) for cell in row.cells)}</tr>"


def render_node(node) -> str:
    """Build markup for any node of the layout tree."""
    if node is None:
        return ""
    if isinstance(node, Table):
        return f"<table{_attr('class', node.css_class)}>{''.join(render_row(r) for r in node.rows)}</table>"
    if isinstance(node, PersonBox):
        return render_person_box(node)
    if isinstance(node, EmptyBox):
        return f'<div style="width:{_px(node.width)}px; height:{_px(node.height)}px;"></div>'
    if isinstance(node, Line):
        return render_line(node)
    if isinstance(node, Spacer):
        return f'<img class="spacer" src="{glyph_uri("spacer")}" alt="">'
    raise TypeError(f"Cannot render {type(node).__name__}")


# =============================================================================
# HTML Generation
# =============================================================================

def render_block(block: ChartBlock) -> str:
    """Heading plus descendancy and pedigree side by side, then a page break."""
    name = html_module.escape(block.person.full_name)
    return (
        f"<h3>Family of {name}</h3>"
        '<table class="t0"><tr><td class="tdmid">'
        f"{render_node(block.descendancy)}"
        '</td><td class="tdmid">'
        f"{render_node(block.pedigree)}"
        "</td></tr></table>"
        f"{PAGE_BREAK}"
    )


def render_book(blocks: list[ChartBlock]) -> str:
    return "\n".join(render_block(block) for block in blocks)


def load_template(name: str) -> str:
    """Load HTML template from templates directory."""
    template_path = TEMPLATE_DIR / name
    return template_path.read_text(encoding="utf-8")


def load_static_file(path: str) -> str:
    """Load static file (CSS) from static directory."""
    file_path = STATIC_DIR / path
    return file_path.read_text(encoding="utf-8")


def build_page_html(blocks: list[ChartBlock], title: str) -> str:
    """Build a standalone HTML page for the family book."""
    html = load_template("familybook.html" if blocks else "empty.html")
    css_content = load_static_file("css/familybook.css")

    # Inline CSS (Streamlit iframe can't load external files)
    html = html.replace(
        '<link rel="stylesheet" href="{{CSS_URL}}">',
        f"<style>\n{css_content}\n</style>"
    )
    # Placeholders are filled around the chart so names are never rewritten
    head, _, tail = html.partition("{{CONTENT}}")
    title = html_module.escape(title)
    html = head.replace("{{TITLE}}", title)
    if blocks:
        html += render_book(blocks) + tail.replace("{{TITLE}}", title)
    return html
