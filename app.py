import json
import logging
from datetime import date, datetime

import pandas as pd
import streamlit as st

from catalog import default_catalog, default_config
from engine import score, score_frame
from errors import PrioritizationError, ValidationError
from matrix import (
    PrioritizationMatrix,
    filter_records,
    overview_stats,
    record_years,
    records_frame,
    sort_records,
)
from permissions import UserProfile, can_edit
from records import DETAIL_DEFAULTS
from repository import apply_workspace_bundle, build_workspace_bundle, load_demo_repository

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Repair Prioritization Matrix", layout="wide", initial_sidebar_state="expanded")

# ----------------------------
# Helpers and config
# ----------------------------
config = default_config()
catalog = default_catalog()

OPERATIONAL_STATUSES = config.get("operational_statuses", ["Planning"])
CAMPUSES = config.get("campuses", [DETAIL_DEFAULTS["campus"]])
COLLEGES = config.get("colleges", {})
CATEGORIES = config.get("categories", [DETAIL_DEFAULTS["category"]])
URGENCIES = config.get("urgencies", [DETAIL_DEFAULTS["urgency"]])
REQUIRED_FORM_FIELDS = {"title": "Project/Repair Title", "location": "Location/Room", "assessor": "Assessor"}

DEMO_ACCOUNTS = [
    {"name": "PMO Administrator", "role": "Admin", "allowedPages": ["*"]},
    {"name": "Facilities Coordinator", "role": "Staff", "allowedPages": ["prioritization-matrix"]},
    {"name": "Agricultural Department Head", "role": "Staff", "allowedPages": ["classroom-csu-main-cc"]},
    {"name": "Guest Editor", "role": "Editor", "allowedPages": ["prioritization-matrix"]},
]
ANONYMOUS_LABEL = "(Not signed in)"

SORT_LABELS = {
    "priority": "Priority Level",
    "score": "Weighted Score",
    "cost": "Estimated Cost",
    "beneficiaries": "Beneficiaries",
}


def index_of(options: list, value, default: int = 0) -> int:
    try:
        return options.index(value)
    except ValueError:
        return default


def current_profile():
    name = st.session_state.get("profile_name", ANONYMOUS_LABEL)
    for acct in DEMO_ACCOUNTS:
        if acct["name"] == name:
            return UserProfile.from_dict(acct)
    return None


def require_auth(action: str) -> bool:
    if current_profile() is None:
        st.error(f"Please sign in to {action}")
        return False
    return True


def flash(kind: str, message: str) -> None:
    st.session_state["flash"] = (kind, message)


def show_flash() -> None:
    item = st.session_state.pop("flash", None)
    if item:
        kind, message = item
        getattr(st, kind)(message)


def missing_required_fields(form: dict) -> list[str]:
    return [label for key, label in REQUIRED_FORM_FIELDS.items() if not str(form.get(key, "")).strip()]


def rating_guide_frame() -> pd.DataFrame:
    rows = []
    for c in catalog:
        row = {"Criterion": c.name, "Weight": f"{c.weight}%", "Description": c.description}
        for rating in range(5, 0, -1):
            row[str(rating)] = c.guide_for(rating)
        rows.append(row)
    return pd.DataFrame(rows)


# ----------------------------
# Session defaults
# ----------------------------
if "repo" not in st.session_state:
    st.session_state["repo"] = load_demo_repository(catalog)
if "profile_name" not in st.session_state:
    st.session_state["profile_name"] = ANONYMOUS_LABEL

matrix = PrioritizationMatrix(st.session_state["repo"], catalog, page_id=config.get("page_id", "prioritization-matrix"))

# ----------------------------
# Sidebar: Profile + Workspace
# ----------------------------
with st.sidebar:
    st.markdown("### Signed-in Profile")
    st.selectbox(
        "Demo account",
        options=[ANONYMOUS_LABEL] + [a["name"] for a in DEMO_ACCOUNTS],
        key="profile_name",
    )
    profile = current_profile()
    if profile is None:
        st.caption("Viewing as the public. Only published records are shown.")
    else:
        role_note = "page admin" if matrix.is_admin(profile) else "contributor"
        st.caption(f"{profile.role.value} - {role_note}")

    st.divider()
    st.markdown("### Workspace")
    export_name = f"Prioritization_{datetime.now().strftime('%Y%m%d%H%M')}.json"
    st.download_button(
        "Export Workspace",
        data=json.dumps(build_workspace_bundle(matrix.repository), indent=2),
        file_name=export_name,
        mime="application/json",
        key="btn_export_workspace",
    )
    uploaded_workspace = st.file_uploader("Load workspace JSON", type=["json"], key="upload_workspace_bundle")
    if st.button("Load Workspace", key="btn_load_workspace"):
        if uploaded_workspace is None:
            st.warning("Choose a workspace JSON file first.")
        else:
            try:
                count = apply_workspace_bundle(matrix.repository, json.load(uploaded_workspace), catalog)
                flash("success", f"Workspace loaded: {count} records.")
                st.rerun()
            except ValueError as ex:
                st.error(f"Workspace load failed: {ex}")

# ----------------------------
# Header
# ----------------------------
st.title("Repair Prioritization Matrix")
st.caption("Strategic prioritization system for resource allocation decisions")
show_flash()

visible = matrix.list_visible(profile)

tab_overview, tab_criteria, tab_rating, tab_items = st.tabs(
    ["Overview", "Prioritization Matrix", "Assessment Rating", "Priority Items"]
)


def render_overview_tab():
    stats = overview_stats(visible)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Items", stats["total_items"])
    c2.metric("High Priority", stats["high_priority"])
    c3.metric("Assessed", stats["assessed_items"])
    c4.metric("Avg Priority Score", f"{stats['avg_priority_score']:.2f}/5")

    st.subheader("Priority Distribution")
    d1, d2, d3 = st.columns(3)
    d1.metric("High", f"{stats['high_pct']}%", help="Score 3.5 - 5.0")
    d2.metric("Medium", f"{stats['medium_pct']}%", help="Score 2.5 - 3.4")
    d3.metric("Low", f"{stats['low_pct']}%", help="Score 1.0 - 2.4")

    st.subheader("Top Priority Items")
    top = sort_records(visible, "priority")[:5]
    if not top:
        st.info("No prioritization items to show.")
    for r in top:
        st.markdown(
            f"**{r.title}** - {r.location}  \n"
            f"{r.total_weighted_score:.2f}/5 · {r.priority_level.value} · {r.record_status.value}"
        )


def render_criteria_tab():
    st.caption("Standardized weighted scoring system for systematic evaluation of repair priorities")
    st.dataframe(rating_guide_frame(), use_container_width=True, hide_index=True)
    st.markdown("**Priority levels:** High 3.5 - 5.0 · Medium 2.5 - 3.4 · Low 1.0 - 2.4")

    with st.expander("Batch score a ratings CSV"):
        st.caption(f"One row per repair, one column per criterion id: {', '.join(catalog.ids())}")
        uploaded = st.file_uploader("Ratings CSV", type=["csv"], key="upload_ratings_csv")
        if uploaded is not None:
            try:
                results, warnings = score_frame(pd.read_csv(uploaded), catalog)
            except ValueError as ex:
                st.error(str(ex))
                return
            for w in warnings:
                st.warning(w)
            st.dataframe(results, use_container_width=True, hide_index=True)
            st.download_button(
                "Download scored CSV",
                data=results.to_csv(index=False),
                file_name="scored_ratings.csv",
                mime="text/csv",
                key="btn_export_scored",
            )


def render_rating_tab():
    st.caption(f"Rate repair needs using the {len(catalog)}-criteria weighted scoring system")
    editable = [r.id for r in visible] if profile is not None and can_edit(profile.role) else []
    options = ["(New assessment)"] + editable
    selected = st.selectbox(
        "Record",
        options=options,
        key="rating_record_choice",
        format_func=lambda k: k if k == options[0] else f"{k} - {matrix.get(k).title}",
    )
    editing = None if selected == options[0] else matrix.get(selected)
    base = {k: getattr(editing, k) for k in DETAIL_DEFAULTS} if editing else dict(DETAIL_DEFAULTS)
    suffix = editing.id if editing else "new"

    form = {}
    col1, col2 = st.columns(2)
    with col1:
        form["title"] = st.text_input("Project/Repair Title*", value=base["title"], key=f"title_{suffix}")
        form["location"] = st.text_input("Location/Room*", value=base["location"], key=f"location_{suffix}")
        form["assessor"] = st.text_input("Assessor*", value=base["assessor"], key=f"assessor_{suffix}")
        form["campus"] = st.selectbox("Campus", CAMPUSES, index=index_of(CAMPUSES, base["campus"]), key=f"campus_{suffix}")
        college_codes = list(COLLEGES.keys()) or [base["college"]]
        form["college"] = st.selectbox(
            "College/Department",
            college_codes,
            index=index_of(college_codes, base["college"]),
            format_func=lambda k: f"{k} - {COLLEGES.get(k, k)}",
            key=f"college_{suffix}",
        )
        form["category"] = st.selectbox("Category", CATEGORIES, index=index_of(CATEGORIES, base["category"]), key=f"category_{suffix}")
    with col2:
        try:
            assessed_on = date.fromisoformat(base["assessment_date"]) if base["assessment_date"] else date.today()
        except ValueError:
            assessed_on = date.today()
        form["assessment_date"] = st.date_input("Assessment Date", value=assessed_on, key=f"date_{suffix}").isoformat()
        form["estimated_cost"] = st.number_input(
            "Estimated Cost", min_value=0.0, value=float(base["estimated_cost"]), step=1000.0, format="%.0f", key=f"cost_{suffix}"
        )
        form["estimated_beneficiaries"] = int(st.number_input(
            "Estimated Beneficiaries", min_value=0, value=int(base["estimated_beneficiaries"]), step=1, key=f"benef_{suffix}"
        ))
        form["urgency"] = st.selectbox("Urgency", URGENCIES, index=index_of(URGENCIES, base["urgency"]), key=f"urgency_{suffix}")
        form["status"] = st.selectbox(
            "Operational Status", OPERATIONAL_STATUSES, index=index_of(OPERATIONAL_STATUSES, base["status"]), key=f"status_{suffix}"
        )

    st.divider()
    st.markdown("### Criteria Ratings")
    ratings = {}
    for c in catalog:
        current = editing.criteria_scores.get(c.id, 1) if editing else 1
        ratings[c.id] = st.select_slider(
            f"{c.name} ({c.weight}%)",
            options=[1, 2, 3, 4, 5],
            value=current,
            format_func=lambda v, c=c: f"{v} - {c.guide_for(v)}",
            key=f"rating_{c.id}_{suffix}",
        )
    form["criteria_scores"] = ratings

    preview = score(ratings, catalog)
    p1, p2 = st.columns(2)
    p1.metric("Total Weighted Score", f"{preview.total_weighted_score:.2f}/5")
    p2.metric("Priority Level", preview.priority_level.value)

    st.divider()
    form["description"] = st.text_area("Description", value=base["description"], key=f"description_{suffix}")
    form["justification"] = st.text_area("Justification", value=base["justification"], key=f"justification_{suffix}")
    form["comments"] = st.text_area("Comments", value=base["comments"], key=f"comments_{suffix}")

    label = "Update Assessment" if editing else "Save as Draft"
    if st.button(label, type="primary", key=f"btn_save_{suffix}"):
        action = "edit prioritization item" if editing else "create prioritization item"
        if not require_auth(action):
            return
        missing = missing_required_fields(form)
        if missing:
            st.error(f"Please fill in all required fields: {', '.join(missing)}")
            return
        try:
            if editing:
                matrix.edit(editing.id, form, profile)
                flash("success", "Prioritization item updated successfully")
            else:
                record = matrix.submit(form, profile)
                flash("success", f"{record.id} saved as Draft. Awaiting admin approval.")
        except ValidationError as ex:
            for msg in ex.field_errors.values() or [ex.user_message]:
                st.error(msg)
            return
        except PrioritizationError as ex:
            st.error(ex.user_message)
            return
        st.rerun()


def render_items_tab():
    f1, f2, f3 = st.columns(3)
    with f1:
        search = st.text_input("Search title, location or college", key="items_search")
        campus = st.selectbox("Campus", ["all"] + CAMPUSES, key="items_campus")
    with f2:
        college = st.selectbox("College", ["all"] + list(COLLEGES.keys()), key="items_college")
        priority = st.selectbox("Priority Level", ["all", "High", "Medium", "Low"], key="items_priority")
    with f3:
        category = st.selectbox("Category", ["all"] + CATEGORIES, key="items_category")
        year = st.selectbox("Year", ["all"] + record_years(visible), key="items_year")
        sort_by = st.selectbox("Sort By", list(SORT_LABELS.keys()), format_func=SORT_LABELS.get, key="items_sort")

    items = sort_records(
        filter_records(
            visible, search=search, campus=campus, priority=priority, category=category, college=college, year=year
        ),
        sort_by,
    )
    table = records_frame(items, catalog)
    st.dataframe(table, use_container_width=True, hide_index=True)
    st.download_button(
        "Export CSV",
        data=table.to_csv(index=False),
        file_name=f"prioritization_items_{datetime.now().strftime('%Y%m%d')}.csv",
        mime="text/csv",
        key="btn_export_items",
    )

    if not items:
        st.info("No prioritization items match the current filters.")
        return

    st.divider()
    st.subheader("Record Actions")
    target_id = st.selectbox(
        "Record", [r.id for r in items], format_func=lambda k: f"{k} - {matrix.get(k).title}", key="items_action_target"
    )
    target = matrix.get(target_id)
    st.caption(f"Record status: {target.record_status.value} · Submitted by {target.submitted_by}")

    a1, a2 = st.columns(2)
    with a1:
        if target.is_draft and st.button("Approve & Publish", key="btn_approve"):
            try:
                matrix.approve(target.id, profile)
                flash("success", "Prioritization item approved and published")
                st.rerun()
            except PrioritizationError as ex:
                st.error(ex.user_message)
    with a2:
        confirm = st.checkbox("Confirm delete", key=f"confirm_delete_{target.id}")
        if st.button("Delete", key="btn_delete", disabled=not confirm):
            if require_auth("delete prioritization item"):
                try:
                    matrix.delete(target.id, profile)
                    flash("success", "Prioritization item deleted successfully")
                    st.rerun()
                except PrioritizationError as ex:
                    st.error(ex.user_message)


with tab_overview:
    render_overview_tab()

with tab_criteria:
    render_criteria_tab()

with tab_rating:
    render_rating_tab()

with tab_items:
    render_items_tab()
