"""
Family Book Application
A Streamlit page showing the family book chart (descendants and ancestors of a
person, repeated for each married descendant) from the Supabase or JSON tree.
"""

import logging

import streamlit as st
import streamlit.components.v1 as components

from chart_html import build_page_html
from family_book import MAX_DESCENT, ChartOptions, FamilyBook, TreePreferences
from tree_store import FamilyTree, get_supabase_client
from tree_store import load_data as load_tree_data

logger = logging.getLogger(__name__)


# =============================================================================
# Data
# =============================================================================

def read_secrets() -> dict:
    """Streamlit secrets as a plain dict, empty when no secrets file exists."""
    try:
        return dict(st.secrets)
    except Exception as e:
        logger.info("No Streamlit secrets configured: %s", e)
        return {}


def load_data(secrets: dict) -> dict:
    """Load family data from Supabase or fall back to JSON."""
    client = get_supabase_client(secrets.get("SUPABASE_URL"), secrets.get("SUPABASE_KEY"))
    return load_tree_data(client, on_fallback=st.warning)


# =============================================================================
# Controls
# =============================================================================

def chart_controls(tree: FamilyTree, options: ChartOptions, prefs: TreePreferences) -> ChartOptions:
    """Widgets for the chart parameters, seeded from the query string."""
    people = sorted(tree.people.values(), key=lambda p: p.full_name)
    labels = {
        p.xref: p.full_name if tree.can_show_name(p) else f"Private ({p.xref})"
        for p in people
    }
    keys = list(labels)
    index = keys.index(options.pid) if options.pid in labels else 0

    col1, col2, col3, col4 = st.columns([0.34, 0.22, 0.22, 0.22])
    with col1:
        pid = st.selectbox("Individual", options=keys, format_func=lambda x: labels[x], index=index)
        box_width = st.slider("Box width %", 50, 300, options.box_width, step=5)
    with col2:
        generations = st.number_input(
            "Generations", min_value=2, max_value=prefs.max_descendancy_generations,
            value=options.generations, step=1,
        )
        descent = st.number_input(
            "Descent steps", min_value=0, max_value=MAX_DESCENT, value=options.descent, step=1
        )
    with col3:
        show_full = st.checkbox("Show details", value=options.show_full)
    with col4:
        show_spouse = st.checkbox("Show spouses", value=options.show_spouse)

    return ChartOptions.from_params({
        "pid": pid,
        "show_full": int(show_full),
        "show_spouse": int(show_spouse),
        "descent": descent,
        "generations": generations,
        "box_width": box_width,
    }, prefs)


# =============================================================================
# Streamlit Application
# =============================================================================

def main() -> None:
    """Main application entry point."""
    st.set_page_config(
        page_title="Family Book",
        page_icon="📖",
        layout="wide",
        initial_sidebar_state="collapsed"
    )
    st.markdown("""
        <style>
        #MainMenu,footer,[data-testid=stToolbar]{visibility:hidden;height:0}
        .block-container{padding-top:1rem!important;max-width:100%!important}
        iframe{border:none!important}
        </style>
    """, unsafe_allow_html=True)

    secrets = read_secrets()
    prefs = TreePreferences.from_secrets(secrets)
    data = load_data(secrets)
    if not data.get("people"):
        st.info("No family data yet. Add people to the tree first.")
        return

    tree = FamilyTree(data, hide_living=prefs.hide_living)
    options = ChartOptions.from_params(st.query_params.to_dict(), prefs)
    options = chart_controls(tree, options, prefs)
    st.query_params.update(options.to_params())

    book = FamilyBook(tree, options)
    if book.root is None:
        st.error(f"Individual {options.pid!r} was not found.")
        return

    blocks = book.render()
    tree_html = build_page_html(blocks, book.title)

    st.download_button(
        "Download HTML", data=tree_html, file_name=f"familybook_{options.pid}.html", mime="text/html"
    )
    components.html(tree_html, height=900, scrolling=True)


if __name__ == "__main__":
    main()
