# web_app.py

import json
import math
from typing import Any, Dict, List, Optional

import streamlit as st
import plotly.express as px
import plotly.graph_objects as go

from estimator.auth import current_user, generate_slug, login_user, register_user
from estimator.blob_store import BlobStore
from estimator.config import configure_logging, load_settings
from estimator.exceptions import EstimatorError
from estimator.project_service import ProjectService
from estimator.project_store import ProjectStore
from estimator.tools.complexity_calculator import module_complexity
from estimator.tools.estimation_scale import SCALES, detect_scale, get_scale
from estimator.tools.scenario_adjuster import SCENARIOS, scenario_description
from estimator.tools.timeline_estimator import summarize_estimation


# -------------------------------------------------------------------
# Wiring
# -------------------------------------------------------------------

@st.cache_resource
def _get_backend():
    settings = load_settings()
    configure_logging(settings.log_level)
    store = ProjectStore(settings.store_path)
    service = ProjectService(
        store,
        BlobStore(settings.upload_dir),
        default_scale=settings.default_scale,
        default_team_velocity=settings.default_team_velocity,
        genai_api_key=settings.genai_api_key,
        genai_model=settings.genai_model,
    )
    return settings, store, service


# -------------------------------------------------------------------
# Small helpers
# -------------------------------------------------------------------

def _fmt_number(value: float, suffix: str = "") -> str:
    if value is None:
        return "-"
    if math.isinf(value):
        return "∞"
    if float(value).is_integer():
        return f"{int(value)}{suffix}"
    return f"{value:.1f}{suffix}"


def _module_rows(modules_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One row per module with the rolled-up hours written by the rollup."""
    rows = []
    for module in (modules_data or {}).get("modules") or []:
        if not isinstance(module, dict):
            continue
        hours = module.get("calculated_hours") or {}
        features = [f for f in module.get("features") or [] if isinstance(f, dict)]
        rows.append({
            "Module": module.get("name", "Module"),
            "Features": len(features),
            "Original hours": hours.get("original", 0),
            "Adjusted hours": hours.get("adjusted", 0),
            "Complexity": module_complexity(features)["level"],
        })
    return rows


def _sub_feature_rows(feature: Dict[str, Any], scale_key: str) -> List[Dict[str, Any]]:
    rows = []
    for sub in feature.get("sub_features") or []:
        if not isinstance(sub, dict):
            continue
        estimation = sub.get("estimation") if isinstance(sub.get("estimation"), dict) else {}
        rows.append({
            "Task": sub.get("name", "Task"),
            "Size": str(estimation.get(scale_key, "N/A")),
            "Hours": estimation.get("estimated_hours", 0),
            "Reasoning": estimation.get("reasoning", ""),
        })
    return rows


def _show_error(prefix: str, error: Exception) -> None:
    st.error(f"{prefix}: {error}")


def _flash(message: str, kind: str = "success") -> None:
    """Queue a message for the run after the next st.rerun()."""
    st.session_state.setdefault("flash", []).append((kind, message))


def _show_flashed() -> None:
    for kind, message in st.session_state.pop("flash", []):
        getattr(st, kind)(message)


# -------------------------------------------------------------------
# Streamlit UI
# -------------------------------------------------------------------

st.set_page_config(page_title="Project Estimator", layout="wide")

st.markdown(
    """
    <style>
    [data-testid="stAppViewContainer"] .block-container {
        max-width: 90% !important;
        padding-top: 1.5rem !important;
    }

    h2, h3 {
        font-weight: 800 !important;
        color: #1f2937;
        border-bottom: 2px solid #e5e7eb;
        padding-bottom: 0.5rem;
    }

    /* METRICS */

    div[data-testid="stMetric"] {
        border-radius: 0.5rem;
        padding: 0.5rem;
        background-color: #f9fafb;
    }

    div[data-testid="stMetricValue"] {
        font-weight: 900 !important;
        color: #4f46e5 !important;
    }

    /* TABS */

    .stTabs [data-baseweb="tab"][aria-selected="true"] {
        color: #4f46e5;
        border-bottom: 3px solid #4f46e5;
    }
    </style>
    """,
    unsafe_allow_html=True,
)

st.markdown(
    """
<div style="display:flex; align-items:center; gap:1.25rem; margin-bottom: 1.0rem;">
  <div style="
      width:80px; height:80px; border-radius:20px;
      background:linear-gradient(135deg,#4f46e5,#06b6d4);
      display:flex; align-items:center; justify-content:center;
      color:white; font-size:2.5rem; font-weight:900;
  ">
    PE
  </div>
  <div>
    <div style="font-size:1.0rem; text-transform:uppercase; letter-spacing:0.16em; color:#6b7280; font-weight:600;">
      Scope · Size · Schedule
    </div>
    <div style="font-size:2.5rem; font-weight:900; color:#111827;">
      Project Estimator
    </div>
  </div>
</div>
""",
    unsafe_allow_html=True,
)

st.caption(
    "Upload project documents → analyze coverage → generate modules → "
    "size every task → roll up optimistic / realistic / pessimistic estimates."
)

settings, store, service = _get_backend()

# -------------------------------------------------
# Sidebar: account + project picker
# -------------------------------------------------
user: Optional[Dict[str, Any]] = current_user(
    store, st.session_state.get("auth_token"), settings.jwt_secret
)

with st.sidebar:
    st.header("👤 Account")

    if user is None:
        login_tab, signup_tab = st.tabs(["Log in", "Sign up"])
        with login_tab:
            with st.form("login_form"):
                email = st.text_input("Email")
                password = st.text_input("Password", type="password")
                if st.form_submit_button("Log in", type="primary"):
                    try:
                        user, token = login_user(
                            store, email, password, settings.jwt_secret, settings.token_ttl_days
                        )
                        st.session_state["auth_token"] = token
                        st.rerun()
                    except EstimatorError as e:
                        _show_error("Login failed", e)
        with signup_tab:
            with st.form("signup_form"):
                name = st.text_input("Name")
                email = st.text_input("Email", key="signup_email")
                password = st.text_input("Password", type="password", key="signup_password")
                st.caption("At least 8 characters with uppercase, lowercase and a number.")
                if st.form_submit_button("Create account", type="primary"):
                    try:
                        user, token = register_user(
                            store, email, password, name, settings.jwt_secret, settings.token_ttl_days
                        )
                        st.session_state["auth_token"] = token
                        st.rerun()
                    except EstimatorError as e:
                        _show_error("Sign up failed", e)
        st.stop()

    st.write(f"Signed in as **{user['name']}** ({user['email']})")
    if st.button("Log out"):
        st.session_state.pop("auth_token", None)
        st.session_state.pop("project_id", None)
        st.rerun()

    st.markdown("---")
    st.header("📁 Projects")

    projects = service.list_projects(user["id"])
    project_ids = [p["id"] for p in projects]
    if projects:
        current = st.session_state.get("project_id")
        index = project_ids.index(current) if current in project_ids else 0
        st.session_state["project_id"] = st.selectbox(
            "Project",
            project_ids,
            index=index,
            format_func=lambda pid: next(p["name"] for p in projects if p["id"] == pid),
        )
    else:
        st.caption("No projects yet. Create one below.")

    with st.expander("➕ New project", expanded=not projects):
        with st.form("new_project_form", clear_on_submit=True):
            new_name = st.text_input("Project name")
            new_description = st.text_area("Description", height=100)
            if st.form_submit_button("Create project"):
                try:
                    created = service.create_project(user["id"], new_name, new_description)
                    st.session_state["project_id"] = created["id"]
                    st.rerun()
                except EstimatorError as e:
                    _show_error("Could not create project", e)

project_id = st.session_state.get("project_id")
if not project_id:
    st.info("Create or select a project in the sidebar to get started.")
    st.stop()

try:
    detail = service.get_project_detail(user["id"], project_id)
except EstimatorError as e:
    st.session_state.pop("project_id", None)
    _show_error("Could not load project", e)
    st.stop()

project = detail["project"]
active_version = detail["active_version"]

st.markdown(f"## {project['name']}")
if project.get("description"):
    st.write(project["description"])
_show_flashed()

(
    tab_documents,
    tab_analysis,
    tab_modules,
    tab_estimation,
    tab_versions,
    tab_export,
) = st.tabs(
    [
        "Documents",
        "Analysis",
        "Modules",
        "Estimation",
        "Versions",
        "Export",
    ]
)

# ---------------- Documents ----------------
with tab_documents:
    st.subheader("Project Documents")

    with st.expander("✏️ Edit project details"):
        with st.form("edit_project_form"):
            edit_name = st.text_input("Project name", value=project["name"])
            edit_description = st.text_area("Description", value=project.get("description") or "")
            if st.form_submit_button("Save"):
                try:
                    service.update_project(user["id"], project_id, edit_name, edit_description)
                    st.rerun()
                except EstimatorError as e:
                    _show_error("Could not update project", e)

    uploads = st.file_uploader(
        "Upload requirement documents (PDF, Word, Excel, text, screenshots)",
        type=["pdf", "docx", "doc", "xlsx", "xls", "txt", "md", "json", "png", "jpg", "jpeg", "webp"],
        accept_multiple_files=True,
    )
    if uploads and st.button("📤 Upload files", type="primary"):
        for uploaded in uploads:
            try:
                service.upload_document(
                    user["id"], project_id, uploaded.name, uploaded.getvalue(), uploaded.type
                )
                _flash(f"Uploaded {uploaded.name}")
            except EstimatorError as e:
                _flash(f"Upload failed for {uploaded.name}: {e}", "error")
        st.rerun()

    if not detail["files"]:
        st.info("No documents uploaded yet.")
    for record in detail["files"]:
        c_name, c_size, c_delete = st.columns((4, 1, 1))
        c_name.write(f"📄 {record['original_name']}")
        c_size.write(f"{record['file_size'] / 1024:.1f} KB")
        if c_delete.button("Delete", key=f"delete_{record['id']}"):
            try:
                service.delete_document(user["id"], project_id, record["id"])
                st.rerun()
            except EstimatorError as e:
                _show_error("Could not delete file", e)

# ---------------- Analysis ----------------
with tab_analysis:
    st.subheader("Requirement Coverage")

    if st.button("🔍 Analyze documents", type="primary", disabled=not detail["files"]):
        with st.spinner("Analyzing documents with Gemini..."):
            try:
                service.run_analysis(user["id"], project_id)
                st.rerun()
            except EstimatorError as e:
                _show_error("Analysis failed", e)

    analysis = detail["analysis"]
    if not analysis:
        st.info("Upload documents and run an analysis to see coverage scores.")
    else:
        coverage = {
            "Functional": analysis.get("functional_coverage", 0),
            "Business": analysis.get("business_coverage", 0),
            "User experience": analysis.get("user_experience_coverage", 0),
            "Scope": analysis.get("scope_coverage", 0),
        }
        clarity = analysis.get("overall_clarity", 0)

        c_left, c_right = st.columns((1.4, 1.0))
        with c_left:
            fig_cov = px.bar(
                x=list(coverage.keys()),
                y=list(coverage.values()),
                title="Coverage by category (%)",
                labels={"x": "Category", "y": "Coverage"},
                range_y=[0, 100],
            )
            st.plotly_chart(fig_cov, use_container_width=True)
        with c_right:
            gauge_fig = go.Figure(
                go.Indicator(
                    mode="gauge+number",
                    value=clarity,
                    title={"text": "Overall clarity"},
                    gauge={
                        "axis": {"range": [0, 100]},
                        "steps": [
                            {"range": [0, 40], "color": "#fecaca"},
                            {"range": [40, 70], "color": "#facc15"},
                            {"range": [70, 100], "color": "#bbf7d0"},
                        ],
                    },
                )
            )
            gauge_fig.update_layout(margin=dict(l=20, r=20, t=50, b=10))
            st.plotly_chart(gauge_fig, use_container_width=True)

        st.markdown("#### Project summary")
        st.write(analysis.get("project_summary") or "No summary available")

        missing = analysis.get("missing_items") or []
        st.markdown("#### Missing information")
        if missing:
            st.markdown("\n".join(f"- {item}" for item in missing))
        else:
            st.success("Nothing obviously missing.")

# ---------------- Modules ----------------
with tab_modules:
    st.subheader("Modules & Features")

    scale_choice = st.radio(
        "Estimation scale for generation",
        list(SCALES),
        index=list(SCALES).index(settings.default_scale),
        horizontal=True,
        format_func=lambda name: "T-shirt sizes" if name == "tshirt" else "Fibonacci points",
    )
    if st.button("🧩 Generate modules", type="primary", disabled=not detail["files"]):
        with st.spinner("Generating modules and estimates..."):
            try:
                service.generate_modules(user["id"], project_id, scale_choice)
                st.rerun()
            except EstimatorError as e:
                _show_error("Module generation failed", e)

    if not active_version:
        st.info("No modules yet. Upload documents and generate modules.")
    else:
        modules_data = active_version.get("modules_data") or {}
        scale = get_scale(active_version["scale"]) if active_version.get("scale") else detect_scale(modules_data)
        if (modules_data.get("metadata") or {}).get("fallback"):
            st.warning("The generator was unavailable; this is a default module outline.")

        st.caption(f"Active version: v{active_version['version']} · {active_version['name']}")
        for module in modules_data.get("modules") or []:
            with st.expander(f"📦 {module.get('name', 'Module')}"):
                st.write(module.get("description") or "")
                for feature in module.get("features") or []:
                    st.markdown(f"**{feature.get('name', 'Feature')}** · complexity: {feature.get('complexity', '-')}")
                    st.dataframe(
                        _sub_feature_rows(feature, scale.estimation_key),
                        use_container_width=True,
                        hide_index=True,
                    )

        with st.expander("🛠️ Edit module JSON"):
            edited = st.text_area(
                "Module tree (saved as a new version)",
                value=json.dumps(modules_data, indent=2),
                height=400,
            )
            version_name = st.text_input("Version name (optional)")
            if st.button("💾 Save as new version"):
                try:
                    parsed = json.loads(edited)
                    service.create_version(user["id"], project_id, parsed, version_name or None)
                    _flash("Saved new version.")
                    st.rerun()
                except json.JSONDecodeError as e:
                    _show_error("Invalid JSON", e)
                except EstimatorError as e:
                    _show_error("Could not save version", e)

# ---------------- Estimation ----------------
with tab_estimation:
    st.subheader("Scenario Estimation")

    if not active_version:
        st.info("Generate modules first to estimate the project.")
    else:
        c_scenario, c_velocity = st.columns((2, 1))
        with c_scenario:
            scenario = st.radio(
                "Scenario",
                SCENARIOS,
                index=SCENARIOS.index("realistic"),
                horizontal=True,
                format_func=str.capitalize,
            )
            st.caption(scenario_description(scenario))
        with c_velocity:
            team_velocity = st.number_input(
                "Team velocity (hours per sprint)",
                min_value=1.0,
                max_value=1000.0,
                value=float(settings.default_team_velocity),
                step=1.0,
            )

        try:
            preview = service.preview_estimation(user["id"], project_id, scenario, team_velocity)
        except EstimatorError as e:
            _show_error("Estimation failed", e)
            preview = None

        if preview:
            estimation = preview["estimation"]
            totals = estimation["totals"]

            m1, m2, m3, m4 = st.columns(4)
            m1.metric("Original hours", _fmt_number(totals["original_hours"], "h"))
            m2.metric(
                "Adjusted hours",
                _fmt_number(totals["adjusted_hours"], "h"),
                _fmt_number(totals["adjusted_hours"] - totals["original_hours"], "h"),
                delta_color="inverse",
            )
            m3.metric("Sprints", _fmt_number(totals["estimated_sprints"]))
            m4.metric("Weeks", _fmt_number(totals["estimated_weeks"]))

            rows = _module_rows(preview["modules_data"])
            if rows:
                fig_modules = go.Figure(
                    data=[
                        go.Bar(name="Original", x=[r["Module"] for r in rows], y=[r["Original hours"] for r in rows]),
                        go.Bar(name="Adjusted", x=[r["Module"] for r in rows], y=[r["Adjusted hours"] for r in rows]),
                    ]
                )
                fig_modules.update_layout(
                    barmode="group",
                    title="Hours per module",
                    yaxis_title="Hours",
                )
                st.plotly_chart(fig_modules, use_container_width=True)
                st.dataframe(rows, use_container_width=True, hide_index=True)

            timeline = preview["timeline"]
            fig_timeline = px.bar(
                x=[s.capitalize() for s in SCENARIOS],
                y=[timeline["timeline_weeks"][s] for s in SCENARIOS],
                title=f"Scenario comparison ({timeline['range_weeks']})",
                labels={"x": "Scenario", "y": "Estimated duration (weeks)"},
            )
            st.plotly_chart(fig_timeline, use_container_width=True)
            with st.expander("Assumptions"):
                st.markdown("\n".join(f"- {a}" for a in timeline["assumptions"]))

            with st.expander("🧮 What if the total were..."):
                what_if_hours = st.number_input("Total hours", min_value=0.0, value=float(totals["adjusted_hours"]))
                what_if = summarize_estimation(what_if_hours, team_velocity)
                st.write(
                    f"{_fmt_number(what_if['hours'], 'h')} → "
                    f"{_fmt_number(what_if['sprints'])} sprints, {_fmt_number(what_if['weeks'])} weeks"
                )

            if st.button(f"✅ Apply {scenario} estimation", type="primary"):
                try:
                    applied = service.apply_estimation(user["id"], project_id, scenario, team_velocity)
                    _flash(f"Saved as v{applied['version']['version']}: {applied['version']['name']}")
                    st.rerun()
                except EstimatorError as e:
                    _show_error("Could not apply estimation", e)

# ---------------- Versions ----------------
with tab_versions:
    st.subheader("Version History")

    history = service.list_versions(user["id"], project_id)
    versions = history["versions"]
    if not versions:
        st.info("No versions yet.")
    else:
        st.dataframe(
            [
                {
                    "Version": f"v{v['version']}",
                    "Name": v["name"],
                    "Scenario": v.get("optimistic_level") or "-",
                    "Adjusted hours": v.get("adjusted_estimation_hours", "-"),
                    "Created": v["created_at"],
                    "Active": "✅" if v["id"] == history["active_version_id"] else "",
                }
                for v in versions
            ],
            use_container_width=True,
            hide_index=True,
        )
        chosen_version = st.selectbox(
            "Switch active version",
            [v["id"] for v in versions],
            format_func=lambda vid: next(f"v{v['version']} · {v['name']}" for v in versions if v["id"] == vid),
        )
        if st.button("Activate version", disabled=chosen_version == history["active_version_id"]):
            try:
                service.activate_version(user["id"], project_id, chosen_version)
                st.rerun()
            except EstimatorError as e:
                _show_error("Could not activate version", e)

# ---------------- Export ----------------
with tab_export:
    st.subheader("Export")

    if not active_version:
        st.info("Nothing to export yet.")
    else:
        try:
            report = service.export_markdown(user["id"], project_id)
        except EstimatorError as e:
            _show_error("Export failed", e)
            report = ""
        if report:
            st.download_button(
                "⬇️ Download Markdown report",
                data=report,
                file_name=f"{generate_slug(project['name']) or 'project'}-estimation.md",
                mime="text/markdown",
            )
            with st.expander("Preview"):
                st.markdown(report)
