# pages/1_Condition_Detail.py
# Streamlit page — gender & admission class breakdown for one condition

import logging

import streamlit as st
import plotly.express as px

from fhir_aggregates import (
    CONDITION_PARAM,
    cross_tab_frame,
    gender_admission_counts,
    read_condition_param,
    resolve_condition,
    smart_truncate,
)
from fhir_data import (
    CONDITION_FILE,
    ENCOUNTER_FILE,
    PATIENT_FILE,
    DataLoadError,
    load_documents,
    resolve_data_source,
)

st.set_page_config(page_title="Condition Detail", page_icon="🔬", layout="wide")

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


# ---------------------------- Utils ----------------------------
def _configured_secrets():
    # st.secrets raises when no secrets.toml exists
    try:
        return dict(st.secrets)
    except Exception:
        return None


def create_gender_admission_chart(table, condition, height=400):
    """Grouped bar chart: gender on x, one bar per admission class."""
    fig = px.bar(
        table,
        x="Gender",
        y="Number of Patients",
        color="Admission Class",
        barmode="group",
        category_orders={
            "Gender": list(dict.fromkeys(table["Gender"])),
            "Admission Class": list(dict.fromkeys(table["Admission Class"])),
        },
        color_discrete_sequence=px.colors.qualitative.D3,
        title=f"Gender & Admission Class for {smart_truncate(condition, 60)}",
        height=height,
    )
    fig.update_layout(title_x=0.5, yaxis_title="Number of Patients", xaxis_title="Gender")
    return fig


# ----------------------------- Page -----------------------------
selected_condition = read_condition_param(st.query_params.get(CONDITION_PARAM))
logger.info("Selected condition: %s", selected_condition)

with st.sidebar:
    st.subheader("Data Source")
    data_source = st.text_input(
        "FHIR export directory or URL (Condition / Patient / Encounter .json)",
        value=resolve_data_source(secrets=_configured_secrets())
    )

st.markdown("[⬅️ Back to condition overview](/)")

if selected_condition is None:
    st.warning("⚠️ No condition selected. Pick one from the condition overview.")
    st.stop()

st.header(selected_condition)

try:
    conditions, patients, encounters = load_documents(
        data_source, [CONDITION_FILE, PATIENT_FILE, ENCOUNTER_FILE]
    )
except DataLoadError:
    logger.exception("Error fetching details")
    st.error("Error loading data.")
    st.stop()

match = resolve_condition(conditions, patients, encounters, selected_condition)
if match is None:
    st.info("No data found.")
    st.stop()

logger.info(
    "Matched %d conditions -> %d patient ids, %d encounter ids",
    len(match["conditions"]), len(match["patient_ids"]), len(match["encounter_ids"])
)
logger.info(
    "Matched patients: %d, matched encounters: %d",
    len(match["patients"]), len(match["encounters"])
)

counts = gender_admission_counts(match["patients"], match["encounters"])
logger.info("Gender + admission distribution: %s", counts)

# ---------------- KPIs ----------------
c1, c2, c3 = st.columns(3)
with c1:
    st.metric("Condition Records", len(match["conditions"]))
with c2:
    st.metric("Patients", len(match["patients"]))
with c3:
    st.metric("Encounters", len(match["encounters"]))

# ---------------- Chart & table ----------------
table = cross_tab_frame(counts)

if table.empty:
    st.info("No encounters with a known patient for this condition.")
    st.stop()

st.plotly_chart(create_gender_admission_chart(table, selected_condition), use_container_width=True)
st.dataframe(table, hide_index=True, use_container_width=True)
