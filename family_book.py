"""
Family Book - chart layout.

For one individual, lays out a descendancy chart (children, grandchildren...)
next to a pedigree chart (parents, grandparents...), then repeats the pair for
each married descendant down a number of descent steps.

The renderers build a tree of tables, person boxes and connector lines with
their pixel sizes worked out; chart_html turns that tree into markup.
"""

import logging
import math
from contextlib import contextmanager
from dataclasses import dataclass, field

from tree_store import FamilyTree, Person

logger = logging.getLogger(__name__)

# Theme box sizes (px)
CHART_BOX_X, CHART_BOX_Y = 250, 80
COMPACT_CHART_BOX_X, COMPACT_CHART_BOX_Y = 240, 50

DEFAULT_MAX_GENERATIONS = 15
MAX_DESCENT = 9


# =============================================================================
# Chart Parameters
# =============================================================================

def _int_param(params, name: str, low: int, high: int, default: int) -> int:
    """Read an integer request parameter, clamped to [low, high]."""
    value = params.get(name)
    if isinstance(value, (list, tuple)):
        value = value[-1] if value else None
    if value is None or value == "":
        return default
    try:
        value = int(str(value).strip())
    except ValueError:
        return default
    return min(max(value, low), high)


@dataclass(frozen=True)
class TreePreferences:
    pedigree_full_details: bool = True
    max_descendancy_generations: int = DEFAULT_MAX_GENERATIONS
    hide_living: bool = False

    @classmethod
    def from_secrets(cls, secrets) -> "TreePreferences":
        """Read the [familybook] table of the secrets file."""
        section = dict((secrets or {}).get("familybook") or {})
        return cls(
            pedigree_full_details=bool(section.get("pedigree_full_details", True)),
            max_descendancy_generations=max(
                2, int(section.get("max_descendancy_generations", DEFAULT_MAX_GENERATIONS))
            ),
            hide_living=bool(section.get("hide_living", False)),
        )


@dataclass(frozen=True)
class ChartOptions:
    pid: str = ""
    show_full: bool = True
    show_spouse: bool = False
    descent: int = 5
    generations: int = 2
    box_width: int = 100

    @classmethod
    def from_params(cls, params, prefs: TreePreferences | None = None) -> "ChartOptions":
        """Build options from request parameters, clamping each to its range."""
        prefs = prefs or TreePreferences()
        pid = params.get("pid")
        if isinstance(pid, (list, tuple)):
            pid = pid[-1] if pid else None
        return cls(
            pid=str(pid or "").strip(),
            show_full=bool(_int_param(params, "show_full", 0, 1, int(prefs.pedigree_full_details))),
            show_spouse=bool(_int_param(params, "show_spouse", 0, 1, 0)),
            descent=_int_param(params, "descent", 0, MAX_DESCENT, 5),
            generations=_int_param(params, "generations", 2, prefs.max_descendancy_generations, 2),
            box_width=_int_param(params, "box_width", 50, 300, 100),
        )

    def to_params(self) -> dict:
        return {
            "pid": self.pid,
            "show_full": str(int(self.show_full)),
            "show_spouse": str(int(self.show_spouse)),
            "descent": str(self.descent),
            "generations": str(self.generations),
            "box_width": str(self.box_width),
        }


# =============================================================================
# Geometry
# =============================================================================

@dataclass(frozen=True)
class BoxGeometry:
    width: float
    height: float

    @property
    def half_height(self) -> float:
        return self.height / 2

    @classmethod
    def for_options(cls, options: ChartOptions) -> "BoxGeometry":
        if options.show_full:
            return cls(options.box_width * CHART_BOX_X / 100, CHART_BOX_Y)
        return cls(options.box_width * COMPACT_CHART_BOX_X / 100, COMPACT_CHART_BOX_Y)


class LayoutContext:
    """Box dimensions in effect while one chart block is laid out."""

    def __init__(self, geometry: BoxGeometry):
        self.geometry = geometry
        self.width = geometry.width
        self.height = geometry.height

    @property
    def half_height(self) -> float:
        return self.height / 2

    @contextmanager
    def narrowed(self, by: float):
        """Shrink the box width for a nested render, restoring it afterwards."""
        saved = self.width, self.height
        self.width -= by
        try:
            yield self
        finally:
            self.width, self.height = saved


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# Layout Tree
# =============================================================================

@dataclass
class PersonBox:
    person: Person | None
    width: float
    height: float
    generation: int
    role: str
    show_full: bool = True
    visible: bool = True


@dataclass
class EmptyBox:
    """Blank placeholder keeping the grid aligned where a relative is missing."""

    width: float
    height: float


@dataclass
class Line:
    kind: str  # "vline" or "hline"
    height: float
    width: float | None = None
    css_class: str = ""
    anchor: str | None = None


@dataclass
class Spacer:
    """Spacer glyph, drawn over a repeating vertical line."""


@dataclass
class Cell:
    content: list = field(default_factory=list)
    css_class: str = ""
    width: float | None = None
    background: str | None = None


@dataclass
class Row:
    cells: list[Cell] = field(default_factory=list)


@dataclass
class Table:
    rows: list[Row] = field(default_factory=list)
    css_class: str = ""

    def walk(self):
        """Yield this table and every node below it, depth first."""
        yield self
        for row in self.rows:
            for cell in row.cells:
                for node in cell.content:
                    if isinstance(node, Table):
                        yield from node.walk()
                    else:
                        yield node

    def nodes(self, kind) -> list:
        return [node for node in self.walk() if isinstance(node, kind)]


def _cell(node=None, **kwargs) -> Cell:
    return Cell([node] if node is not None else [], **kwargs)


@dataclass
class ChartBlock:
    person: Person
    descendancy: Table | None
    pedigree: Table | None
    slots: float = 0


@dataclass
class BookContext:
    """State shared across one family book render."""

    first_chart_emitted: bool = False
    blocks: list[ChartBlock] = field(default_factory=list)


def spouse_line_height(line_height: float, generations: int, famcount: int, box_height: float) -> float:
    """
    Height of the father's connector when the root has several spouse rows.

    The correction factors are tuned by eye for up to five generations; deeper
    charts keep the plain line height.
    """
    linefactor = 0
    if generations > 2:
        tblheight = box_height + 8
        if generations == 3:
            if famcount == 3:
                linefactor = tblheight / 2
            elif famcount > 3:
                linefactor = tblheight
        elif generations == 4:
            if famcount == 4:
                linefactor = tblheight
            elif famcount > 4:
                linefactor = (famcount - generations) * (tblheight * 1.5)
        elif generations == 5:
            if famcount > 5:
                linefactor = tblheight * (famcount - generations)
    if generations > 5:
        return line_height
    return (famcount - 1) * (box_height + 8) - linefactor


# =============================================================================
# Family Book
# =============================================================================

class FamilyBook:
    """Computes the family book chart blocks for one request."""

    def __init__(self, tree: FamilyTree, options: ChartOptions):
        self.tree = tree
        self.options = options
        self.generations = options.generations
        self.layout = LayoutContext(BoxGeometry.for_options(options))
        self.root = tree.get_person(options.pid)

        # Generations of descendants on record below the root
        self.dgenerations = max(1, self.max_descendancy_generations(options.pid, 0))

    @property
    def title(self) -> str:
        if self.root is not None and self.tree.can_show_name(self.root):
            return f"Family book of {self.root.full_name}"
        return "Family book"

    def max_descendancy_generations(self, pid: str, depth: int) -> int:
        """Count descendant generations below pid, stopping at the generation cap."""
        if depth > self.generations:
            return depth
        person = self.tree.get_person(pid)
        if person is None:
            return depth

        max_dc = depth
        for family in self.tree.spouse_families(person):
            for child in family.children:
                dc = self.max_descendancy_generations(child.xref, depth + 1)
                if dc >= self.generations:
                    return dc
                max_dc = max(max_dc, dc)
        max_dc += 1
        if max_dc == 1:
            max_dc += 1
        return max_dc

    def _box(self, person: Person | None, generation: int, role: str) -> PersonBox:
        return PersonBox(
            person=person,
            width=self.layout.width,
            height=self.layout.height,
            generation=generation,
            role=role,
            show_full=self.options.show_full,
            visible=self.tree.can_show_name(person),
        )

    # -------------------------------------------------------------------------
    # Descendancy
    # -------------------------------------------------------------------------

    def render_descendancy(self, person: Person | None, generation: int) -> tuple:
        """
        Lay out person and their descendants down to dgenerations.

        Returns the layout table and the number of slots the subtree takes up,
        which sizes the vertical connectors of the level above.
        """
        if generation > self.dgenerations:
            return None, 0

        layout = self.layout
        num_kids = 0
        cells = []

        if generation < self.dgenerations:
            # All children, from all partners
            children = []
            if person is not None:
                for family in self.tree.spouse_families(person):
                    children.extend(family.children)

            if children:
                rows = []
                for i, child in enumerate(children):
                    branch, kids = self.render_descendancy(child, generation + 1)
                    num_kids += kids
                    row = Row([_cell(branch)])
                    if len(children) > 1:
                        row.cells.append(self._descendancy_connector(child, kids, i, len(children)))
                    rows.append(row)
                block = Table(rows)
            else:
                # Empty slot keeps the columns aligned
                branch, kids = self.render_descendancy(None, generation + 1)
                num_kids += kids
                block = Table([Row([_cell(branch)])])
            cells.append(_cell(block, width=layout.width))

        if num_kids == 0:
            num_kids = 1

        if person is not None:
            role = "root" if generation == 1 else "descendant"
            box_rows = [Row([
                _cell(self._box(person, generation, role)),
                _cell(Line("hline", 3, width=8, css_class="line2")),
            ])]
        else:
            box_rows = [Row([_cell(EmptyBox(layout.width + 19, layout.height + 8)), Cell()])]

        if generation == 1 and self.options.show_spouse and person is not None:
            for family in self.tree.spouse_families(person):
                with layout.narrowed(5):
                    spouse_box = self._box(family.spouse_of(person), generation, "spouse")
                box_rows.append(Row([_cell(spouse_box), Cell()]))
                num_kids += 0.95

        cells.append(_cell(Table(box_rows), width=layout.width))
        return Table([Row(cells)]), num_kids

    def _descendancy_connector(self, child: Person, kids: float, index: int, count: int) -> Cell:
        if 0 < index < count - 1:
            return _cell(Spacer(), background="vline")

        # Assumes border = 1 and padding = 3 on the boxes
        height = _round_half_up((self.layout.height * kids + 8) / 2)
        if kids > 1:
            height += (kids - 1) * 4
        anchor = f"vline_{child.xref}"
        if index == 0:
            return _cell(Line("vline", height - 1, css_class="tvertline", anchor=anchor), css_class="tdbot")
        return _cell(Line("vline", height + 1, css_class="bvertline", anchor=anchor), css_class="tdtop")

    # -------------------------------------------------------------------------
    # Pedigree
    # -------------------------------------------------------------------------

    def _pedigree_empty_box(self) -> EmptyBox:
        return EmptyBox(self.layout.width + 16, self.layout.height + 8)

    def _empty_rows(self, count: int) -> Table:
        return Table([Row([_cell(self._pedigree_empty_box()), Cell()]) for _ in range(count)])

    def render_pedigree(self, person: Person | None, count: int) -> Table | None:
        """Lay out the ancestors of person, generation count onwards."""
        if count >= self.generations:
            return None

        layout = self.layout
        genoffset = self.generations
        line_height = (layout.half_height + 4) * 2 ** (genoffset - count - 1)

        families = self.tree.child_families(person)
        if not families:
            # No parents on record: fill both parent columns with empty boxes
            return Table([
                Row([_cell(self._pedigree_empty_box()), _cell(self.render_pedigree(person, count + 1))]),
                Row([_cell(self._pedigree_empty_box()), _cell(self.render_pedigree(person, count + 1))]),
            ])

        if len(families) > 1:
            logger.debug(
                "%s has %d parent families, charting only the first", person.xref, len(families)
            )
        family = families[0]

        famcount = 0
        if self.options.show_spouse:
            famcount = len(self.tree.spouse_families(person))

        # Root with several spouse rows: stretch the father's line to reach them
        father_line = line_height
        if count == 1 and genoffset <= famcount:
            father_line = spouse_line_height(line_height, genoffset, famcount, layout.height)

        father, mother = family.husband, family.wife
        if father is not None:
            father_branch = self.render_pedigree(father, count + 1)
        else:
            father_branch = self._empty_rows(2 ** (genoffset - count - 1) - 1)

        if mother is not None:
            mother_branch = self.render_pedigree(mother, count + 1)
        elif count < genoffset - 1:
            mother_branch = self._empty_rows(2 ** (genoffset - count - 1))
        else:
            mother_branch = None

        return Table([
            Row([
                _cell(Line("vline", father_line - 1, css_class="line3 pvline"), css_class="tdbot"),
                _cell(Line("hline", 3, css_class="line4")),
                _cell(self._box(father, count + 1, "father")),
                _cell(father_branch),
            ]),
            Row([
                _cell(Line("vline", line_height + 1, css_class="pvline"), css_class="tdtop"),
                _cell(Line("hline", 3, css_class="line4")),
                _cell(self._box(mother, count + 1, "mother")),
                _cell(mother_branch),
            ]),
        ])

    # -------------------------------------------------------------------------
    # Book
    # -------------------------------------------------------------------------

    def render(self, person: Person | None = None, descent_steps: int | None = None) -> list[ChartBlock]:
        """Lay out the whole family book, starting from the root person."""
        context = BookContext()
        person = person if person is not None else self.root
        steps = self.options.descent if descent_steps is None else descent_steps
        if person is not None:
            self.render_family_book(person, steps, context)
        return context.blocks

    def render_family_book(self, person: Person, descent_steps: int, context: BookContext) -> None:
        if descent_steps <= 0:
            return
        if not self.tree.can_show_name(person):
            logger.debug("Skipping family book of %s: name is private", person.xref)
            return

        families = self.tree.spouse_families(person)
        if families or not context.first_chart_emitted:
            context.first_chart_emitted = True
            self.dgenerations = self.generations
            descendancy, slots = self.render_descendancy(person, 1)
            pedigree = self.render_pedigree(person, 1)
            context.blocks.append(ChartBlock(person, descendancy, pedigree, slots))

            for family in families:
                for child in family.children:
                    self.render_family_book(child, descent_steps - 1, context)
