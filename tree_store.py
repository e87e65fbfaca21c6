"""
Family Tree records - storage and navigation.

Loads people, parent-child edges and spouse pairs from Supabase or the local
JSON file, and derives the family units (couple or lone parent plus children)
the charts walk through.
"""

import json
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import toml
from supabase import create_client, Client

logger = logging.getLogger(__name__)

# Paths
BASE_DIR = Path(__file__).parent
DATA_PATH = BASE_DIR / "data" / "family.json"
SECRETS_PATH = BASE_DIR / ".streamlit" / "secrets.toml"

# People born less than this many years ago with no death year count as living
LIVING_YEARS = 100


# =============================================================================
# Records
# =============================================================================

def _year(value) -> int | None:
    match = re.search(r"\d{3,4}", str(value or ""))
    return int(match.group()) if match else None


@dataclass(eq=False)
class Person:
    xref: str
    name: str
    gender: str = ""
    birth_year: str | None = None
    death_year: str | None = None
    birth_order: int | None = None
    image_path: str | None = None
    private: bool = False

    @classmethod
    def from_record(cls, pid: str, record: dict) -> "Person":
        order = record.get("birth_order")
        try:
            order = int(order) if order not in (None, "") else None
        except (TypeError, ValueError):
            order = None
        return cls(
            xref=pid,
            name=(record.get("name") or "").strip(),
            gender=(record.get("gender") or "").lower(),
            birth_year=record.get("birth_year") or None,
            death_year=record.get("death_year") or None,
            birth_order=order,
            image_path=record.get("image_path") or None,
            private=bool(record.get("private")),
        )

    @property
    def full_name(self) -> str:
        return self.name or "Unknown"

    @property
    def lifespan(self) -> str:
        birth, death = self.birth_year, self.death_year
        if birth:
            return f"{birth}-{death if death else 'Present'}"
        return f"d. {death}" if death else ""

    def __repr__(self) -> str:
        return f"Person({self.xref!r}, {self.name!r})"


@dataclass(eq=False)
class Family:
    """A couple, or a lone parent, together with their children."""

    key: frozenset
    husband: Person | None = None
    wife: Person | None = None
    children: list[Person] = field(default_factory=list)

    @property
    def partners(self) -> list[Person]:
        return [p for p in (self.husband, self.wife) if p is not None]

    def spouse_of(self, person: Person) -> Person | None:
        if person is self.husband:
            return self.wife
        if person is self.wife:
            return self.husband
        return None

    def __repr__(self) -> str:
        return f"Family({sorted(self.key)!r})"


# =============================================================================
# Tree Accessor
# =============================================================================

class FamilyTree:
    """Read-only navigation over the family records."""

    def __init__(self, data: dict, hide_living: bool = False, today: date | None = None):
        self.hide_living = hide_living
        self.current_year = (today or date.today()).year
        self.people = {
            pid: Person.from_record(pid, record)
            for pid, record in (data.get("people") or {}).items()
        }

        self.families: list[Family] = []
        self._families_by_key = {}
        self._spouse_families = defaultdict(list)
        self._child_families = defaultdict(list)
        self._build_families(data.get("spouses") or [], data.get("edges") or [])

    def _build_families(self, spouse_pairs: list, edges: list) -> None:
        """Build family units from explicit spouse pairs and shared children."""
        for pair in spouse_pairs:
            ids = [pid for pid in pair if pid in self.people]
            if len(ids) == 2 and ids[0] != ids[1]:
                self._family_for(ids)

        parents_of = defaultdict(list)
        for e in edges:
            if len(e) != 2 or e[0] not in self.people or e[1] not in self.people:
                continue
            parent, child = e
            if parent not in parents_of[child]:
                parents_of[child].append(parent)

        lone_children = []
        for child_id, parent_ids in parents_of.items():
            if len(parent_ids) == 1:
                lone_children.append((child_id, parent_ids[0]))
                continue
            # Parents beyond the first couple form further child-of families
            for i in range(0, len(parent_ids), 2):
                self._add_child(self._family_for(parent_ids[i:i + 2]), child_id)

        # A child recorded against one partner belongs to that partner's only couple
        for child_id, parent_id in lone_children:
            couples = [f for f in self._spouse_families[parent_id] if len(f.key) == 2]
            family = couples[0] if len(couples) == 1 else self._family_for([parent_id])
            self._add_child(family, child_id)

        for family in self.families:
            family.children.sort(key=self._child_sort_key)

    def _add_child(self, family: Family, child_id: str) -> None:
        family.children.append(self.people[child_id])
        self._child_families[child_id].append(family)

    def _family_for(self, ids: list) -> Family:
        key = frozenset(ids)
        family = self._families_by_key.get(key)
        if family is None:
            husband, wife = self._assign_roles([self.people[pid] for pid in ids])
            family = Family(key, husband, wife)
            self._families_by_key[key] = family
            self.families.append(family)
            for partner in family.partners:
                self._spouse_families[partner.xref].append(family)
        return family

    @staticmethod
    def _assign_roles(partners: list) -> tuple:
        if len(partners) == 1:
            p = partners[0]
            return (None, p) if p.gender == "female" else (p, None)
        first, second = partners
        if first.gender == "female" and second.gender != "female":
            return second, first
        return first, second

    @staticmethod
    def _child_sort_key(person: Person) -> tuple:
        order = person.birth_order if person.birth_order is not None else 999
        return (order, person.name)

    def get_person(self, pid: str | None) -> Person | None:
        return self.people.get(pid) if pid else None

    def spouse_families(self, person: Person | None) -> list[Family]:
        if person is None:
            return []
        return list(self._spouse_families.get(person.xref, []))

    def child_families(self, person: Person | None) -> list[Family]:
        if person is None:
            return []
        return list(self._child_families.get(person.xref, []))

    def parent_family(self, person: Person | None) -> Family | None:
        families = self.child_families(person)
        return families[0] if families else None

    def is_living(self, person: Person) -> bool:
        if person.death_year:
            return False
        birth = _year(person.birth_year)
        return birth is None or self.current_year - birth < LIVING_YEARS

    def can_show_name(self, person: Person | None) -> bool:
        """Whether the person's name may be shown to the viewer."""
        if person is None or person.private:
            return False
        if self.hide_living and self.is_living(person):
            return False
        return True


# =============================================================================
# Loading
# =============================================================================

def load_secrets(path: Path = SECRETS_PATH) -> dict:
    """Read the Streamlit secrets file outside of a Streamlit session."""
    if not path.exists():
        return {}
    return toml.load(path)


def get_supabase_client(url: str | None, key: str | None) -> "Client | None":
    """Get Supabase client if configured."""
    if url and key:
        return create_client(url, key)
    return None


def load_data_from_json(path: Path = DATA_PATH) -> dict:
    """Load family data from local JSON file."""
    if not path.exists():
        return {"people": {}, "edges": [], "spouses": []}
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    data.setdefault("people", {})
    data.setdefault("edges", [])
    data.setdefault("spouses", [])
    logger.info("Loaded %d people from %s", len(data["people"]), path)
    return data


def load_data_from_supabase(client: "Client") -> dict:
    """Load family data from Supabase database."""
    data = {"people": {}, "edges": [], "spouses": []}

    result = client.table("people").select("*").execute()
    for row in result.data:
        data["people"][row["id"]] = {
            "name": row["name"],
            "gender": row["gender"],
            "image_path": row.get("image_path"),
            "birth_year": row.get("birth_year"),
            "death_year": row.get("death_year"),
            "birth_order": row.get("birth_order"),
            "private": row.get("private", False),
        }

    # Parent-child relationships
    result = client.table("edges").select("*").execute()
    for row in result.data:
        data["edges"].append([row["parent_id"], row["child_id"]])

    result = client.table("spouses").select("*").execute()
    for row in result.data:
        data["spouses"].append([row["person1_id"], row["person2_id"]])

    logger.info("Loaded %d people from Supabase", len(data["people"]))
    return data


def load_data(client: "Client | None" = None, json_path: Path = DATA_PATH, on_fallback=None) -> dict:
    """
    Load family data from Supabase or fall back to JSON.

    on_fallback, when given, is called with a message if Supabase fails.
    """
    if client:
        try:
            return load_data_from_supabase(client)
        except Exception as e:
            logger.warning("Failed to load from Supabase: %s. Using local data.", e)
            if on_fallback is not None:
                on_fallback(f"Failed to load from Supabase: {e}. Using local data.")
    return load_data_from_json(json_path)
