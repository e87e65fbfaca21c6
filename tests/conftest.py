from datetime import date

import pytest

from family_book import ChartOptions, FamilyBook
from tree_store import FamilyTree


def make_data(people, edges=(), spouses=()):
    """Store-format data; people maps pid -> name or record dict."""
    records = {}
    for pid, record in people.items():
        if isinstance(record, str):
            record = {"name": record}
        records[pid] = dict(record)
    return {"people": records, "edges": [list(e) for e in edges], "spouses": [list(s) for s in spouses]}


@pytest.fixture
def family_data():
    """
    Grandparents gp1+gp2 -> Frank; Frank+Mary -> Robert.
    Robert+Susan -> Carl, Clara; Robert+Sarah -> Chris; Carl+Wendy -> Gina.
    """
    return make_data(
        {
            "gp1": {"name": "George Hale", "gender": "male", "birth_year": "1898", "death_year": "1971"},
            "gp2": {"name": "Grace Hale", "gender": "female", "birth_year": "1902", "death_year": "1980"},
            "f": {"name": "Frank Hale", "gender": "male", "birth_year": "1928", "death_year": "2001"},
            "m": {"name": "Mary Dunn", "gender": "female", "birth_year": "1931", "death_year": "2012"},
            "r": {"name": "Robert Hale", "gender": "male", "birth_year": "1958"},
            "s1": {"name": "Susan Price", "gender": "female", "birth_year": "1960"},
            "s2": {"name": "Sarah Boyd", "gender": "female", "birth_year": "1966"},
            "c1": {"name": "Carl Hale", "gender": "male", "birth_year": "1984", "birth_order": 1},
            "c2": {"name": "Clara Hale", "gender": "female", "birth_year": "1987", "birth_order": 2},
            "c3": {"name": "Chris Hale", "gender": "male", "birth_year": "1995"},
            "w1": {"name": "Wendy Moss", "gender": "female", "birth_year": "1986"},
            "g1": {"name": "Gina Hale", "gender": "female", "birth_year": "2012"},
        },
        edges=[
            ("gp1", "f"), ("gp2", "f"),
            ("f", "r"), ("m", "r"),
            ("r", "c2"), ("s1", "c2"),
            ("r", "c1"), ("s1", "c1"),
            ("r", "c3"), ("s2", "c3"),
            ("c1", "g1"), ("w1", "g1"),
        ],
        spouses=[("gp1", "gp2"), ("f", "m"), ("r", "s1"), ("r", "s2"), ("c1", "w1")],
    )


@pytest.fixture
def tree(family_data):
    return FamilyTree(family_data, today=date(2026, 1, 1))


@pytest.fixture
def make_book(tree):
    def _make(pid="r", tree=tree, **params):
        options = ChartOptions(pid=pid, **params)
        return FamilyBook(tree, options)
    return _make
