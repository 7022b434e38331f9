"""
Hotel Reputation Dashboard — normalized review scores across platforms.
Run with: streamlit run reputation/dashboard.py
"""

import streamlit as st
import plotly.graph_objects as go
import pandas as pd

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from reputation.config import (
    DASHBOARD_USERNAME, DASHBOARD_PASSWORD, LARGE_REFRESH_WARNING,
)
from reputation.database import (
    initialize_database, create_hotel, update_hotel, delete_hotel, get_hotel, list_hotels,
    import_hotels, create_group, rename_group, delete_group, get_group, list_groups,
    set_group_members, get_observations,
)
from reputation.export import (
    format_rating, format_timestamp, generate_filename, to_csv_bytes,
    hotel_table, group_table, hotel_history_table, group_history_table,
)
from reputation.history import DATE_RANGES, DATE_RANGE_LABELS, default_date_range
from reputation.ingestion import refresh_hotel, refresh_hotels
from reputation.models import PLATFORMS, PLATFORM_ORDER
from reputation.queries import (
    get_hotel_score, get_hotel_scores, get_group_score, get_hotel_trend,
    get_group_trend, get_hotel_history, get_hotel_platform_history, list_group_overviews,
)

# ============================================================
# PAGE CONFIG
# ============================================================
st.set_page_config(
    page_title="Hotel Reputation",
    page_icon="◆",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ============================================================
# STYLING — applied ONCE at the top of every render
# ============================================================
CUSTOM_CSS = """
<style>
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap');
html, body, [class*="css"] { font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif; }

footer {visibility: hidden;}
#MainMenu {visibility: hidden;}

:root {
    --bg-elevated: #2d2b26;
    --border: rgba(255,235,205,0.08);
    --text-primary: #e8e0d5;
    --text-secondary: #9c9588;
    --accent: #d97757;
    --accent-hover: #e8895f;
}

/* Score cards */
[data-testid="stMetric"] {
    background: var(--bg-elevated);
    border: 1px solid var(--border); border-radius: 14px;
    padding: 16px 20px; box-shadow: 0 2px 12px rgba(0,0,0,0.2);
}
[data-testid="stMetric"] label {
    color: var(--text-secondary) !important; font-weight: 500; font-size: 0.72rem;
    text-transform: uppercase; letter-spacing: 0.06em;
}
[data-testid="stMetric"] [data-testid="stMetricValue"] {
    color: var(--text-primary) !important; font-weight: 700; font-size: 1.5rem;
}

.stButton > button, .stDownloadButton > button {
    border-radius: 10px; font-weight: 600; border: 1px solid var(--border);
}
.stButton > button[kind="primary"] {
    background: var(--accent) !important; color: #fff !important; border: none;
}
.stButton > button[kind="primary"]:hover { background: var(--accent-hover) !important; }

[data-testid="stSidebar"] {
    background: linear-gradient(180deg, #16140f 0%, #1f1d18 100%);
    border-right: 1px solid var(--border);
}

.stTabs [data-baseweb="tab-list"] { gap: 4px; border-bottom-color: var(--border); }
.stTabs [aria-selected="true"] { border-bottom: 2px solid var(--accent) !important; }
hr { border-color: var(--border); }
</style>
"""

st.markdown(CUSTOM_CSS, unsafe_allow_html=True)

PLATFORM_COLORS = {
    "google": "#d97757",
    "tripadvisor": "#5a9e6f",
    "booking": "#6c8ebf",
    "expedia": "#c9a85c",
}


def apply_chart_style(fig):
    fig.update_layout(
        font=dict(family="Inter, sans-serif", color="#9c9588"),
        paper_bgcolor="rgba(0,0,0,0)", plot_bgcolor="rgba(0,0,0,0)",
        title_font=dict(size=14, color="#e8e0d5"),
        xaxis=dict(gridcolor="rgba(255,235,205,0.04)", linecolor="rgba(255,235,205,0.08)",
                   tickfont=dict(color="#9c9588")),
        yaxis=dict(gridcolor="rgba(255,235,205,0.04)", linecolor="rgba(255,235,205,0.08)",
                   tickfont=dict(color="#9c9588"), range=[0, 10.2]),
        legend=dict(font=dict(color="#9c9588", size=10)),
        margin=dict(l=40, r=20, t=45, b=35),
    )
    return fig


# ============================================================
# SESSION STATE HELPERS
# ============================================================

# Persistent auth — survives browser F5 refresh (server-side cache)
@st.cache_resource
def _get_auth_store():
    return {"authenticated": False}

def _save_auth(state: bool):
    _get_auth_store()["authenticated"] = state

def _check_auth() -> bool:
    return _get_auth_store().get("authenticated", False)

@st.cache_resource
def _ensure_database():
    initialize_database()
    return True

def _clear_view_state():
    """Clear confirmation flags when switching between hotels and groups."""
    for k in ["confirm_delete_hotel", "confirm_delete_group", "confirm_refresh_group"]:
        st.session_state.pop(k, None)


# ============================================================
# LOGIN
# ============================================================
def render_login():
    st.markdown("""
    <div style="display:flex; flex-direction:column; align-items:center; justify-content:center;
                padding-top:4vh; text-align:center;">
        <div style="font-size:2rem; margin-bottom:0.2rem; color:#d97757;">◆</div>
        <h1 style="font-size:2rem; font-weight:700; margin:0; letter-spacing:-0.02em;
                    color:#e8e0d5;">
            Hotel Reputation</h1>
        <p style="color:#9c9588; font-size:0.9rem; margin:0.2rem 0 1rem; font-weight:300;">
            One 0-10 score across Google, TripAdvisor, Booking.com and Expedia</p>
    </div>
    """, unsafe_allow_html=True)

    col1, col2, col3 = st.columns([1.3, 1, 1.3])
    with col2:
        with st.form("login_form"):
            username = st.text_input("Username", placeholder="Username", label_visibility="collapsed")
            password = st.text_input("Password", type="password", placeholder="Password", label_visibility="collapsed")
            submitted = st.form_submit_button("Sign in", use_container_width=True, type="primary")
            if submitted:
                if username == DASHBOARD_USERNAME and password == DASHBOARD_PASSWORD:
                    st.session_state.authenticated = True
                    _save_auth(True)
                    st.rerun()
                else:
                    st.error("Invalid credentials.")


# ============================================================
# SIDEBAR
# ============================================================
def render_sidebar():
    st.sidebar.markdown("""
    <div style="text-align:center; padding:0.5rem 0 0.3rem;">
        <span style="color:#d97757; font-size:1.4rem;">◆</span>
        <span style="font-size:1.1rem; font-weight:700; color:#e8e0d5; margin-left:6px;">Hotel Reputation</span>
    </div>""", unsafe_allow_html=True)
    st.sidebar.markdown("---")

    view = st.sidebar.radio("View", ["Hotels", "Groups", "Add & import"],
                            label_visibility="collapsed", key="sidebar_view")
    selected_id = None

    if view == "Hotels":
        hotels = list_hotels()
        options = {"All hotels": None}
        for h in hotels:
            label = f"{h.name} ({h.city})"
            if label in options:
                label = f"{label} · {h.id[:6]}"
            options[label] = h.id
        selected_label = st.sidebar.selectbox("Hotel", list(options.keys()), key="sidebar_hotel")
        selected_id = options[selected_label]
        st.sidebar.caption(f"**{len(hotels)}** hotels")

    elif view == "Groups":
        groups = list_groups()
        options = {"All groups": None}
        for g in groups:
            options[f"{g.name} ({len(g.member_ids)})"] = g.id
        selected_label = st.sidebar.selectbox("Group", list(options.keys()), key="sidebar_group")
        selected_id = options[selected_label]
        st.sidebar.caption(f"**{len(groups)}** groups")

    # Detect switch → clear stale confirmations
    current = (view, selected_id)
    if st.session_state.get("_current_selection") not in (None, current):
        _clear_view_state()
    st.session_state["_current_selection"] = current

    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out", use_container_width=True, key="btn_logout"):
        _save_auth(False)
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()

    return view, selected_id


# ============================================================
# SCORE CARDS + CHARTS
# ============================================================
def _score_label(value) -> str:
    return f"{format_rating(value)} / 10" if value is not None else "No review data yet"


def render_score_cards(score):
    """Weighted score first, then one card per platform (always in the same order)."""
    cols = st.columns(len(PLATFORM_ORDER) + 1)
    cols[0].metric("Weighted score", _score_label(score.weighted_score),
                   help=f"{score.total_reviews:,} reviews" if score.has_data else None)
    for col, key in zip(cols[1:], PLATFORM_ORDER):
        platform_score = score.platform(key)
        if platform_score is None:
            col.metric(PLATFORMS[key].display_name, "-")
        else:
            col.metric(PLATFORMS[key].display_name, format_rating(platform_score.rating),
                       help=f"{platform_score.review_count:,} reviews")
    if score.has_data:
        st.caption(f"Last updated: {format_timestamp(score.last_updated)}")


def _date_range_selector(key):
    options = list(DATE_RANGES)
    try:
        default = default_date_range()
    except ValueError as e:
        st.error(str(e))
        st.stop()
    return st.selectbox("Date range", options, index=options.index(default),
                        format_func=DATE_RANGE_LABELS.get, key=key)


def chart_score_trend(points, title):
    scored = [p for p in points if p.score is not None]
    if not scored:
        st.caption("No snapshots in this date range.")
        return
    fig = go.Figure(go.Scatter(
        x=[p.date for p in scored], y=[p.score for p in scored],
        mode="lines+markers",
        customdata=[p.total_reviews for p in scored],
        hovertemplate="%{x}<br>%{y:.1f} / 10<br>%{customdata:,} reviews<extra></extra>",
        line=dict(color="#d97757", width=3),
        marker=dict(size=7, color="#d97757", line=dict(width=2, color="#2d2b26")),
    ))
    fig.update_layout(title=title, height=360, yaxis_title="Score (0-10)")
    apply_chart_style(fig)
    st.plotly_chart(fig, use_container_width=True)


def chart_platform_history(rows):
    if not rows:
        return
    df = pd.DataFrame(rows)
    fig = go.Figure()
    for key in PLATFORM_ORDER:
        if df[key].notna().any():
            fig.add_trace(go.Scatter(
                x=df["date"], y=df[key], mode="lines+markers", name=PLATFORMS[key].display_name,
                connectgaps=True, line=dict(color=PLATFORM_COLORS[key], width=2), marker=dict(size=5),
            ))
    fig.update_layout(title="By platform", height=360, yaxis_title="Rating (0-10)",
                      legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="center", x=0.5))
    apply_chart_style(fig)
    st.plotly_chart(fig, use_container_width=True)


def _download_button(label, table, prefix, key):
    st.download_button(label, data=to_csv_bytes(table), file_name=generate_filename(prefix),
                       mime="text/csv", use_container_width=True, key=key)


def _run_refresh(hotels):
    """Shared bulk refresh with a progress bar. Failures are listed, never raised."""
    progress = st.progress(0, text="Starting refresh...")
    def cb(cur, tot, msg):
        progress.progress(int((cur / tot) * 100) if tot else 0, text=msg)
    bulk = refresh_hotels(hotels, progress_callback=cb)
    progress.progress(100, text="Complete!")
    if bulk.success_count:
        st.success(f"Refreshed **{bulk.success_count}** of **{bulk.total}** hotels")
    for error in bulk.errors:
        st.warning(error)


# ============================================================
# HOTELS
# ============================================================
def render_hotels_overview():
    hotels = list_hotels()
    st.markdown("### All hotels")
    if not hotels:
        st.info("No hotels yet. Add one under **Add & import**.")
        return

    scores = get_hotel_scores([h.id for h in hotels])

    cols = st.columns(4)
    for i, hotel in enumerate(hotels):
        score = scores[hotel.id]
        with cols[i % 4]:
            if hotel.image_url:
                st.image(hotel.image_url, use_container_width=True)
            st.metric(f"{hotel.name} · {hotel.city}", _score_label(score.weighted_score),
                      help=f"{score.total_reviews:,} reviews" if score.has_data else None)

    st.markdown("---")
    table = hotel_table(hotels, scores)
    st.dataframe(table, use_container_width=True, hide_index=True)
    _download_button("⬇ Export CSV", table, "hotels", "dl_hotels")


def render_hotel_detail(hotel_id):
    hotel = get_hotel(hotel_id)
    if hotel is None:
        st.error("Hotel not found.")
        return

    # Listing thumbnail if a refresh found one, the brand mark otherwise
    if hotel.image_url:
        avatar = (f'<img src="{hotel.image_url}" style="width:44px; height:44px; '
                  f'border-radius:10px; object-fit:cover;">')
    else:
        avatar = '<span style="font-size:1.3rem; color:#d97757;">◆</span>'

    st.markdown(f"""
    <div style="display:flex; align-items:center; gap:10px; margin-bottom:0.2rem;">
        {avatar}
        <span style="font-size:1.3rem; font-weight:700; color:#e8e0d5;">{hotel.name}</span>
        <span style="color:#9c9588; font-size:0.9rem;">{hotel.city}</span>
    </div>""", unsafe_allow_html=True)

    tab_scores, tab_history, tab_manage = st.tabs(["📊 Scores", "🕑 History", "⚙ Manage"])

    with tab_scores:
        if st.button("🔄 Refresh ratings", type="primary", key="btn_refresh_hotel"):
            with st.spinner(f"Fetching ratings for {hotel.name}..."):
                result = refresh_hotel(hotel)
            for platform in result.succeeded:
                st.success(f"{PLATFORMS[platform].display_name}: updated")
            for platform, error in result.failed.items():
                st.warning(f"{PLATFORMS[platform].display_name}: {error}")

        score = get_hotel_score(hotel.id)
        render_score_cards(score)

        st.markdown("---")
        date_range = _date_range_selector("hotel_range")
        c1, c2 = st.columns(2)
        with c1:
            chart_score_trend(get_hotel_trend(hotel.id, date_range=date_range), "Weighted score")
        with c2:
            chart_platform_history(get_hotel_platform_history(hotel.id, date_range=date_range))

        _download_button("⬇ Export current scores", hotel_table([hotel], {hotel.id: score}),
                         hotel.name, "dl_hotel_current")

    with tab_history:
        history_range = _date_range_selector("hotel_history_range")
        history = hotel_history_table(hotel, get_hotel_history(hotel.id, date_range=history_range))
        if history.empty:
            st.info("No snapshots in this date range. Refresh ratings to take a new one.")
        else:
            st.dataframe(history.iloc[::-1], use_container_width=True, hide_index=True)
            _download_button("⬇ Export history", history, f"{hotel.name}-history", "dl_hotel_history")

    with tab_manage:
        with st.form("edit_hotel"):
            name = st.text_input("Name", value=hotel.name)
            city = st.text_input("City", value=hotel.city)
            website = st.text_input("Website", value=hotel.website_url or "")
            if st.form_submit_button("Save"):
                try:
                    update_hotel(hotel.id, name, city, website)
                    st.rerun()
                except ValueError as e:
                    st.error(str(e))

        st.markdown("**Danger zone**")
        if st.button("🗑 Delete this hotel", key="btn_delete_hotel"):
            st.session_state["confirm_delete_hotel"] = hotel.id

        if st.session_state.get("confirm_delete_hotel") == hotel.id:
            st.warning(f"This will permanently delete **{hotel.name}**, its group memberships "
                       f"and its entire rating history.")
            cc1, cc2, cc3 = st.columns([1, 1, 2])
            with cc1:
                if st.button("Yes, delete", type="primary", key="confirm_del_hotel_yes"):
                    delete_hotel(hotel.id)
                    st.session_state.pop("confirm_delete_hotel", None)
                    st.session_state.pop("sidebar_hotel", None)
                    st.rerun()
            with cc2:
                if st.button("Cancel", key="confirm_del_hotel_no"):
                    st.session_state.pop("confirm_delete_hotel", None)
                    st.rerun()


# ============================================================
# GROUPS
# ============================================================
def render_groups_overview():
    st.markdown("### Groups")
    overviews = list_group_overviews()
    if not overviews:
        st.info("No groups yet. Create one under **Add & import**.")
        return

    cols = st.columns(3)
    for i, overview in enumerate(overviews):
        aggregate = overview.aggregate
        with cols[i % 3]:
            st.metric(overview.group.name, _score_label(aggregate.weighted_score),
                      help=f"{aggregate.total_reviews:,} reviews" if aggregate.has_data else None)
            st.caption(f"{aggregate.hotels_with_data} of {overview.member_count} hotels with data")


def render_group_detail(group_id):
    group = get_group(group_id)
    if group is None:
        st.error("Group not found.")
        return
    hotels = list_hotels(group.member_ids)

    st.markdown(f"""
    <div style="display:flex; align-items:center; gap:10px; margin-bottom:0.2rem;">
        <span style="font-size:1.3rem; color:#d97757;">◆</span>
        <span style="font-size:1.3rem; font-weight:700; color:#e8e0d5;">{group.name}</span>
        <span style="color:#9c9588; font-size:0.9rem;">{len(hotels)} hotels</span>
    </div>""", unsafe_allow_html=True)

    tab_scores, tab_history, tab_manage = st.tabs(["📊 Scores", "🕑 History", "⚙ Members"])

    with tab_scores:
        if st.button(f"🔄 Refresh all {len(hotels)} hotels", type="primary",
                     key="btn_refresh_group", disabled=not hotels):
            if len(hotels) > LARGE_REFRESH_WARNING:
                st.session_state["confirm_refresh_group"] = group.id
            else:
                _run_refresh(hotels)

        if st.session_state.get("confirm_refresh_group") == group.id:
            st.warning(f"Refreshing **{len(hotels)}** hotels makes {len(hotels) * len(PLATFORM_ORDER)} "
                       f"provider calls and takes a while. Continue?")
            cc1, cc2, cc3 = st.columns([1, 1, 2])
            with cc1:
                if st.button("Yes, refresh", type="primary", key="confirm_refresh_yes"):
                    st.session_state.pop("confirm_refresh_group", None)
                    _run_refresh(hotels)
            with cc2:
                if st.button("Cancel", key="confirm_refresh_no"):
                    st.session_state.pop("confirm_refresh_group", None)
                    st.rerun()

        aggregate = get_group_score(group.id)
        render_score_cards(aggregate)
        st.caption(f"{aggregate.hotels_with_data} of {len(hotels)} hotels with data")

        st.markdown("---")
        date_range = _date_range_selector("group_range")
        chart_score_trend(get_group_trend(group.id, date_range=date_range), "Group score")

        st.markdown("### Hotels")
        table = group_table(group.name, hotels, aggregate)
        st.dataframe(table, use_container_width=True, hide_index=True)
        _download_button("⬇ Export group", table, f"group-{group.name}", "dl_group_current")

    with tab_history:
        history = group_history_table(group.name, hotels, get_observations(group.member_ids))
        if history.empty:
            st.info("No review data yet for any hotel in this group.")
        else:
            st.dataframe(history, use_container_width=True, hide_index=True)
            _download_button("⬇ Export history", history, f"group-{group.name}-history",
                             "dl_group_history")

    with tab_manage:
        all_hotels = list_hotels()
        labels = {h.id: f"{h.name} ({h.city})" for h in all_hotels}
        with st.form("group_members"):
            new_name = st.text_input("Group name", value=group.name)
            members = st.multiselect("Hotels", list(labels), default=group.member_ids,
                                     format_func=labels.get)
            if st.form_submit_button("Save"):
                try:
                    rename_group(group.id, new_name)
                    set_group_members(group.id, members)
                    st.rerun()
                except ValueError as e:
                    st.error(str(e))

        st.markdown("**Danger zone**")
        if st.button("🗑 Delete this group", key="btn_delete_group"):
            st.session_state["confirm_delete_group"] = group.id

        if st.session_state.get("confirm_delete_group") == group.id:
            st.warning(f"This deletes the group **{group.name}** only. Its hotels and their "
                       f"history are kept.")
            cc1, cc2, cc3 = st.columns([1, 1, 2])
            with cc1:
                if st.button("Yes, delete", type="primary", key="confirm_del_group_yes"):
                    delete_group(group.id)
                    st.session_state.pop("confirm_delete_group", None)
                    st.session_state.pop("sidebar_group", None)
                    st.rerun()
            with cc2:
                if st.button("Cancel", key="confirm_del_group_no"):
                    st.session_state.pop("confirm_delete_group", None)
                    st.rerun()


# ============================================================
# ADD & IMPORT
# ============================================================
def render_add():
    c1, c2 = st.columns(2)

    with c1:
        st.markdown("### Add hotel")
        with st.form("add_hotel", clear_on_submit=True):
            name = st.text_input("Name")
            city = st.text_input("City")
            website = st.text_input("Website (optional)")
            if st.form_submit_button("➕ Add hotel", type="primary"):
                try:
                    hotel = create_hotel(name, city, website)
                    st.success(f"**{hotel.name}** added!")
                except ValueError as e:
                    st.error(str(e))

        st.markdown("### Import from CSV")
        st.caption("Columns: **name** (or **hotel name**) and **city**. Other columns are ignored.")
        uploaded = st.file_uploader("CSV file", type=["csv"], label_visibility="collapsed")
        if uploaded is not None and st.button("⬆ Import hotels", key="btn_import"):
            try:
                rows = pd.read_csv(uploaded, dtype=str, keep_default_na=False).to_dict("records")
            except (ValueError, pd.errors.ParserError) as e:
                st.error(f"Could not read CSV: {e}")
            else:
                created, errors = import_hotels(rows)
                st.success(f"Imported **{len(created)}** hotels")
                for error in errors:
                    st.warning(error)

    with c2:
        st.markdown("### Create group")
        hotels = list_hotels()
        labels = {h.id: f"{h.name} ({h.city})" for h in hotels}
        with st.form("create_group", clear_on_submit=True):
            name = st.text_input("Group name")
            members = st.multiselect("Hotels", list(labels), format_func=labels.get)
            if st.form_submit_button("➕ Create group", type="primary"):
                try:
                    group = create_group(name)
                    set_group_members(group.id, members)
                    st.success(f"Group **{group.name}** created with {len(members)} hotels")
                except ValueError as e:
                    st.error(str(e))


# ============================================================
# MAIN
# ============================================================
def main():
    _ensure_database()

    # Restore auth from server-side cache (survives F5 refresh)
    if "authenticated" not in st.session_state:
        st.session_state.authenticated = _check_auth()

    if not st.session_state.authenticated:
        render_login()
        return

    view, selected_id = render_sidebar()
    if view == "Hotels":
        if selected_id:
            render_hotel_detail(selected_id)
        else:
            render_hotels_overview()
    elif view == "Groups":
        if selected_id:
            render_group_detail(selected_id)
        else:
            render_groups_overview()
    else:
        render_add()

if __name__ == "__main__":
    main()
