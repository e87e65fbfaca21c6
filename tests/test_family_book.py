import logging
from unittest import mock

import pytest

from conftest import make_data
from family_book import (
    BoxGeometry,
    ChartOptions,
    EmptyBox,
    FamilyBook,
    LayoutContext,
    Line,
    PersonBox,
    Spacer,
    Table,
    TreePreferences,
    _round_half_up,
    spouse_line_height,
)
from tree_store import FamilyTree


def vline_heights(table):
    return [line.height for line in table.nodes(Line) if line.kind == "vline"]


def box_ids(table):
    return [box.person.xref if box.person else None for box in table.nodes(PersonBox)]


# =============================================================================
# Parameters and geometry
# =============================================================================

def test_chart_options_clamped_to_range():
    options = ChartOptions.from_params({
        "pid": " r ", "descent": "12", "generations": "1", "box_width": "20", "show_spouse": "1",
    })

    assert options.pid == "r"
    assert options.descent == 9
    assert options.generations == 2
    assert options.box_width == 50
    assert options.show_spouse is True
    assert options.show_full is True


def test_chart_options_defaults_and_preferences():
    prefs = TreePreferences(pedigree_full_details=False, max_descendancy_generations=6)
    options = ChartOptions.from_params({"descent": "abc", "generations": "40", "box_width": ""}, prefs)

    assert options.descent == 5
    assert options.generations == 6
    assert options.box_width == 100
    assert options.show_full is False
    assert options.show_spouse is False


def test_chart_options_round_trip_through_params():
    options = ChartOptions(pid="c1", show_full=False, show_spouse=True, descent=3, generations=4, box_width=150)
    assert ChartOptions.from_params(options.to_params()) == options


def test_preferences_from_secrets():
    prefs = TreePreferences.from_secrets({"familybook": {"max_descendancy_generations": 1, "hide_living": True}})
    assert prefs.max_descendancy_generations == 2
    assert prefs.hide_living is True
    assert TreePreferences.from_secrets({}) == TreePreferences()


def test_box_geometry():
    full = BoxGeometry.for_options(ChartOptions())
    assert (full.width, full.height, full.half_height) == (250, 80, 40)

    compact = BoxGeometry.for_options(ChartOptions(show_full=False, box_width=200))
    assert (compact.width, compact.height, compact.half_height) == (480, 50, 25)


def test_narrowed_restores_width_even_on_error():
    layout = LayoutContext(BoxGeometry(250, 80))
    with layout.narrowed(5):
        assert layout.width == 245
    assert layout.width == 250

    with pytest.raises(RuntimeError):
        with layout.narrowed(5):
            raise RuntimeError("boom")
    assert (layout.width, layout.height) == (250, 80)


def test_round_half_up():
    assert _round_half_up(44.5) == 45
    assert _round_half_up(44.4) == 44
    assert _round_half_up(2.5) == 3


# =============================================================================
# Descendancy generation counter
# =============================================================================

def test_no_descendants_counts_two(make_book):
    book = make_book("g1", generations=5)
    assert book.max_descendancy_generations("g1", 0) == 2


def test_counter_on_deeper_lines(make_book):
    assert make_book("c1", generations=9).max_descendancy_generations("c1", 0) == 3
    assert make_book("r", generations=9).max_descendancy_generations("r", 0) == 5


def test_counter_short_circuits_at_cap(make_book, tree):
    book = make_book("r", generations=2)
    with mock.patch.object(tree, "get_person", wraps=tree.get_person) as spy:
        assert book.max_descendancy_generations("r", 0) == 3
    # Clara and Chris are never looked at
    assert [c.args[0] for c in spy.call_args_list] == ["r", "c1", "g1"]


def test_counter_depth_beyond_cap_and_unknown_person(make_book):
    book = make_book("r", generations=2)
    assert book.max_descendancy_generations("r", 3) == 3
    assert book.max_descendancy_generations("nobody", 0) == 0
    assert book.max_descendancy_generations("nobody", 4) == 4


def test_unknown_root(make_book):
    book = make_book("nobody")
    assert book.root is None
    assert book.dgenerations == 1
    assert book.render() == []
    assert book.title == "Family book"


def test_two_families_at_two_generations():
    first, second = ("k1", "k2"), ("k3", "k4", "k5")
    data = make_data(
        {"p": {"name": "Paul", "gender": "male"}, "w1": "Wilma", "w2": "Wendy",
         "k1": "K1", "k2": "K2", "k3": "K3", "k4": "K4", "k5": "K5"},
        edges=[(parent, k) for k in first for parent in ("p", "w1")]
        + [(parent, k) for k in second for parent in ("p", "w2")],
        spouses=[("p", "w1"), ("p", "w2")],
    )
    book = FamilyBook(FamilyTree(data), ChartOptions(pid="p", descent=5, generations=2))

    assert book.dgenerations == 2
    [block] = book.render()
    assert block.slots == 5
    assert vline_heights(block.descendancy) == [43, 45]
    assert len(block.descendancy.nodes(Spacer)) == 3


# =============================================================================
# Descendancy renderer
# =============================================================================

def test_descendancy_connectors(make_book):
    [block, _] = make_book("r", generations=2).render()
    table = block.descendancy

    assert block.slots == 3
    lines = [line for line in table.nodes(Line) if line.kind == "vline"]
    assert [line.height for line in lines] == [43, 45]
    assert [line.css_class for line in lines] == ["tvertline", "bvertline"]
    assert [line.anchor for line in lines] == ["vline_c1", "vline_c3"]
    assert len(table.nodes(Spacer)) == 1

    boxes = table.nodes(PersonBox)
    assert box_ids(table) == ["c1", "c2", "c3", "r"]
    assert [b.generation for b in boxes] == [2, 2, 2, 1]
    assert boxes[-1].role == "root"

    hlines = [line for line in table.nodes(Line) if line.kind == "hline"]
    assert all(line.css_class == "line2" and line.width == 8 and line.height == 3 for line in hlines)


def test_descendancy_compact_boxes(make_book):
    [block, _] = make_book("r", generations=2, show_full=False).render()
    assert vline_heights(block.descendancy) == [28, 30]


def test_descendancy_spouses_on_first_generation(make_book):
    book = make_book("r", generations=2, show_spouse=True)
    [block, _] = book.render()

    assert block.slots == pytest.approx(4.9)
    spouses = [b for b in block.descendancy.nodes(PersonBox) if b.role == "spouse"]
    assert [b.person.xref for b in spouses] == ["s1", "s2"]
    assert all(b.width == 245 for b in spouses)
    assert [b.width for b in block.descendancy.nodes(PersonBox) if b.role != "spouse"] == [250] * 4
    assert book.layout.width == 250


def test_descendancy_empty_slots_keep_columns(make_book):
    [block, _] = make_book("r", generations=3).render()
    table = block.descendancy

    assert block.slots == 3
    assert vline_heights(table) == [43, 45]
    empties = table.nodes(EmptyBox)
    assert len(empties) == 2
    assert all((e.width, e.height) == (269, 88) for e in empties)


def test_descendancy_connector_grows_with_subtree():
    data = make_data(
        {"p": {"name": "Pam", "gender": "female"}, "a": "Al", "b": "Bea", "a1": "A1", "a2": "A2"},
        edges=[("p", "a"), ("p", "b"), ("a", "a1"), ("a", "a2")],
    )
    book = FamilyBook(FamilyTree(data), ChartOptions(pid="p", generations=3))
    [block, _] = book.render()

    assert block.slots == 3
    # A1, A2 under Al; then Al (two slots) and Bea at the top level
    assert vline_heights(block.descendancy) == [43, 45, 87, 45]


def test_descendancy_terminal_and_empty_slot(make_book, tree):
    book = make_book("r", generations=2)
    book.dgenerations = 2

    assert book.render_descendancy(None, 3) == (None, 0)

    table, slots = book.render_descendancy(None, 2)
    assert slots == 1
    assert [(e.width, e.height) for e in table.nodes(EmptyBox)] == [(269, 88)]
    assert table.nodes(PersonBox) == []

    table, slots = book.render_descendancy(tree.get_person("c2"), 2)
    assert slots == 1
    assert box_ids(table) == ["c2"]


# =============================================================================
# Pedigree renderer
# =============================================================================

def test_pedigree_terminal(make_book, tree):
    book = make_book("r", generations=3)
    assert book.render_pedigree(tree.get_person("r"), 3) is None


def test_pedigree_with_grandparents(make_book, tree):
    table = make_book("r", generations=3).render_pedigree(tree.get_person("r"), 1)

    assert vline_heights(table) == [87, 43, 45, 89]
    assert box_ids(table) == ["f", "gp1", "gp2", "m"]
    assert [b.generation for b in table.nodes(PersonBox)] == [2, 3, 3, 2]
    assert [b.role for b in table.nodes(PersonBox)] == ["father", "father", "mother", "mother"]
    # Mary has no parents on record
    assert len(table.nodes(EmptyBox)) == 2


def test_pedigree_without_parents_fills_empty_boxes(make_book, tree):
    table = make_book("m", generations=3).render_pedigree(tree.get_person("m"), 1)

    assert len(table.rows) == 2
    assert all(isinstance(row.cells[0].content[0], EmptyBox) for row in table.rows)
    empties = table.nodes(EmptyBox)
    assert len(empties) == 6
    assert all((e.width, e.height) == (266, 88) for e in empties)
    assert table.nodes(PersonBox) == []


def test_pedigree_missing_father():
    data = make_data({"mo": {"name": "Mona", "gender": "female"}, "k": "Kit"}, edges=[("mo", "k")])
    tree = FamilyTree(data)
    table = FamilyBook(tree, ChartOptions(pid="k", generations=3)).render_pedigree(tree.get_person("k"), 1)

    father_row, mother_row = table.rows
    assert father_row.cells[2].content[0].person is None
    assert len(father_row.cells[3].content[0].rows) == 1
    assert box_ids(table) == [None, "mo"]
    assert len(table.nodes(EmptyBox)) == 3


def test_pedigree_missing_mother():
    data = make_data({"fa": {"name": "Fred", "gender": "male"}, "k": "Kit"}, edges=[("fa", "k")])
    tree = FamilyTree(data)
    table = FamilyBook(tree, ChartOptions(pid="k", generations=3)).render_pedigree(tree.get_person("k"), 1)

    father_row, mother_row = table.rows
    assert mother_row.cells[2].content[0].person is None
    assert len(mother_row.cells[3].content[0].rows) == 2
    assert len(table.nodes(EmptyBox)) == 4


def test_pedigree_spouse_rows_stretch_father_line(make_book, tree):
    robert = tree.get_person("r")
    assert vline_heights(make_book("r", generations=2).render_pedigree(robert, 1)) == [43, 45]
    assert vline_heights(make_book("r", generations=2, show_spouse=True).render_pedigree(robert, 1)) == [87, 45]


def test_pedigree_spouse_correction_only_at_root(family_data):
    family_data["people"].update({"s3": {"name": "Sue Ward"}, "x1": {"name": "Ada Lane"}, "x2": {"name": "Eve Lane"}})
    family_data["spouses"] += [("r", "s3"), ("f", "x1"), ("f", "x2")]
    tree = FamilyTree(family_data)
    book = FamilyBook(tree, ChartOptions(pid="r", generations=3, show_spouse=True))
    table = book.render_pedigree(tree.get_person("r"), 1)

    # Frank also has three spouse families, but his own line keeps line_height - 1
    assert vline_heights(table) == [131, 43, 45, 89]
    assert box_ids(table) == ["f", "gp1", "gp2", "m"]


def test_child_of_one_partner_joins_the_couple():
    data = make_data(
        {"f": {"name": "Fred", "gender": "male"}, "m": {"name": "Mona", "gender": "female"}, "k": "Kit"},
        edges=[("f", "k")],
        spouses=[("f", "m")],
    )
    book = FamilyBook(FamilyTree(data), ChartOptions(pid="f", generations=2, show_spouse=True))
    block = book.render()[0]

    assert block.slots == pytest.approx(1.95)
    assert [b.person for b in block.descendancy.nodes(PersonBox) if b.role == "spouse"] == [book.tree.get_person("m")]


def test_pedigree_charts_only_first_parent_family(caplog):
    data = make_data(
        {"a": "A", "b": "B", "c": "C", "d": "D", "z": "Zed"},
        edges=[("a", "z"), ("b", "z"), ("c", "z"), ("d", "z")],
        spouses=[("a", "b")],
    )
    tree = FamilyTree(data)
    caplog.set_level(logging.DEBUG, logger="family_book")
    table = FamilyBook(tree, ChartOptions(pid="z", generations=2)).render_pedigree(tree.get_person("z"), 1)

    assert box_ids(table) == ["a", "b"]
    assert "2 parent families" in caplog.text


@pytest.mark.parametrize("line_height, generations, famcount, box_height, expected", [
    (44, 2, 2, 80, 88),
    (88, 3, 3, 80, 132),
    (88, 3, 4, 80, 176),
    (176, 4, 4, 80, 176),
    (176, 4, 6, 80, 176),
    (352, 5, 5, 80, 352),
    (352, 5, 7, 80, 352),
    (704, 6, 8, 80, 704),
    (58, 3, 3, 50, 87),
])
def test_spouse_line_height(line_height, generations, famcount, box_height, expected):
    assert spouse_line_height(line_height, generations, famcount, box_height) == expected


# =============================================================================
# Family book
# =============================================================================

def test_book_visits_married_descendants(make_book):
    book = make_book("r", descent=5, generations=2)
    blocks = book.render()

    assert [b.person.xref for b in blocks] == ["r", "c1"]
    assert book.dgenerations == 2
    assert all(isinstance(b.descendancy, Table) and isinstance(b.pedigree, Table) for b in blocks)


def test_book_descent_steps(make_book):
    assert make_book("r", descent=0).render() == []
    assert [b.person.xref for b in make_book("r", descent=1).render()] == ["r"]


def test_first_chart_flag_resets_per_render(make_book):
    book = make_book("c2", descent=5)
    assert [b.person.xref for b in book.render()] == ["c2"]
    assert [b.person.xref for b in book.render()] == ["c2"]


def test_private_child_prunes_branch(family_data):
    family_data["people"]["h"] = {"name": "Hugo", "gender": "male"}
    family_data["spouses"].append(["h", "g1"])
    options = ChartOptions(pid="r", descent=5, generations=2)

    blocks = FamilyBook(FamilyTree(family_data), options).render()
    assert [b.person.xref for b in blocks] == ["r", "c1", "g1"]

    family_data["people"]["c1"]["private"] = True
    blocks = FamilyBook(FamilyTree(family_data), options).render()
    assert [b.person.xref for b in blocks] == ["r"]


def test_hidden_root_renders_nothing(family_data):
    family_data["people"]["r"]["private"] = True
    book = FamilyBook(FamilyTree(family_data), ChartOptions(pid="r"))

    assert book.render() == []
    assert book.title == "Family book"


def test_title(make_book):
    assert make_book("r").title == "Family book of Robert Hale"
