"""
================================================================================
MIMIC-FHIR Explorer: Condition Overview
================================================================================

Streamlit dashboard over the static MIMIC-IV FHIR exports. This page shows
the ten most frequent conditions in Condition.json; clicking a bar opens the
Condition Detail page for that condition.

Structure:
    SECTION 1: Imports & Page Configuration
    SECTION 2: Data Source
    SECTION 3: Visualization Helper Functions
    SECTION 4: Load & Prepare Data
    SECTION 5: Page

To run:
    cd code/
    streamlit run app.py
================================================================================
"""

# =============================================================================
# SECTION 1: IMPORTS & PAGE CONFIGURATION
# =============================================================================

import logging

import streamlit as st
import altair as alt

from fhir_aggregates import condition_detail_href, escape_markdown, top_conditions
from fhir_data import CONDITION_FILE, DataLoadError, load_document, resolve_data_source

# Page configuration - must be first Streamlit command
st.set_page_config(
    page_title="MIMIC-FHIR Explorer",
    page_icon="🏥",
    layout="wide"
)

# Disable Altair row limit for larger datasets
alt.data_transformers.disable_max_rows()

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# =============================================================================
# SECTION 2: DATA SOURCE
# =============================================================================

def _configured_secrets():
    # st.secrets raises when no secrets.toml exists
    try:
        return dict(st.secrets)
    except Exception:
        return None


with st.sidebar:
    st.subheader("Data Source")
    data_source = st.text_input(
        "FHIR export directory or URL (Condition.json)",
        value=resolve_data_source(secrets=_configured_secrets())
    )


# =============================================================================
# SECTION 3: VISUALIZATION HELPER FUNCTIONS
# =============================================================================

def create_condition_chart(freq, height=400):
    """
    Create the top-conditions bar chart.

    Each bar links to the detail page through the `href` channel, and the
    tooltip shows the full condition name with its count.

    Args:
        freq: Output of top_conditions()
        height: Chart height in pixels

    Returns:
        alt.Chart: Configured Altair chart
    """
    chart_data = freq[["name", "count"]].copy()
    chart_data["href"] = chart_data["name"].apply(condition_detail_href)
    chart_data["hint"] = "Click for more details"

    order = chart_data["name"].tolist()

    chart = alt.Chart(chart_data).mark_bar(cursor="pointer").encode(
        x=alt.X("name:N", sort=order, axis=None),
        y=alt.Y("count:Q", title="Patients", axis=alt.Axis(tickCount=6)),
        color=alt.Color(
            "name:N",
            sort=order,
            scale=alt.Scale(scheme="category10"),
            legend=alt.Legend(title="Condition", orient="bottom", columns=2, labelLimit=400)
        ),
        href="href:N",
        tooltip=[
            alt.Tooltip("name:N", title="Condition"),
            alt.Tooltip("count:Q", title="Patients"),
            alt.Tooltip("hint:N", title=" ")
        ]
    ).properties(height=height)

    return chart


# =============================================================================
# SECTION 4: LOAD & PREPARE DATA
# =============================================================================

try:
    conditions = load_document(data_source, CONDITION_FILE)
except DataLoadError:
    logger.exception("Error fetching %s", CONDITION_FILE)
    st.error("Error loading data.")
    st.stop()

top_dx = top_conditions(conditions)
logger.info("Top conditions: %s", top_dx[["name", "count"]].to_dict("records"))


# =============================================================================
# SECTION 5: PAGE
# =============================================================================

st.title("🏥 MIMIC-FHIR Explorer")
st.markdown("### Most Frequent Conditions")
st.markdown(
    "*Hover a bar for details and click it to see the gender and admission "
    "class breakdown for that condition.*"
)

st.divider()

if top_dx.empty:
    st.info("No conditions found.")
    st.stop()

st.altair_chart(create_condition_chart(top_dx), use_container_width=True)

with st.expander("Condition links", expanded=False):
    for row in top_dx.to_dict("records"):
        st.markdown(f"- [{escape_markdown(row['name'])}]({condition_detail_href(row['name'])}) ({row['count']} patients)")
