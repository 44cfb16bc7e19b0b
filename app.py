#!/usr/bin/env python3
"""
Run instructions
- Install dependencies:
    pip install -e .
- Run the app:
    streamlit run app.py

Notes
- With SUPABASE_URL / SUPABASE_ANON_KEY configured (.streamlit/secrets.toml or environment),
  accounts, weights, profiles and friends live in Supabase. Without them the app runs in
  guest mode and persists to a local JSON file.
- The demo button loads a year of sample data for a throwaway user.
- Weights are in lbs and one entry is kept per calendar day; logging again on the same
  day replaces that day's value.
"""
from __future__ import annotations

import os
import time
from typing import Optional

import streamlit as st

from aggregation import entry_changes
from charts import (
    change_color,
    format_change,
    format_progress,
    format_weight,
    make_comparison_chart,
    make_weight_chart,
)
from config import DEFAULT_WINDOW, SUCCESS_CLOSE_DELAY, WINDOWS, configure_logging, load_settings
from dashboard import load_comparison, load_snapshot, record_weight, summarize
from demo_data import DEMO_USER_ID, demo_profile, generate_samples
from errors import FitBuddyError, PersistenceError
from friends import AddFriendFlow, AddFriendState, FriendLinker
from ingest import today_local
from models import ACTIVITY_LABELS, ActivityLevel, Identity
from profiles import merge_profile, needs_onboarding, save_profile
from store import LocalStore, Store, SupabaseStore, create_store

WINDOW_LABELS = {"week": "Week", "month": "Month", "year": "Year", "all": "All"}


# -------------------------------
# Session helpers
# -------------------------------

def _get_store(settings) -> Store:
    if "store" not in st.session_state:
        st.session_state.store = create_store(settings)
    return st.session_state.store


def _start_local_session(settings, identity: Identity, demo: bool = False) -> None:
    """Guest and demo users always use a local store, even when Supabase is configured."""
    store = LocalStore(None if demo else settings.data_path)
    if demo:
        store.load_samples(generate_samples(DEMO_USER_ID, end=today_local(settings.tz)))
        profile = demo_profile(DEMO_USER_ID)
        save_profile(store, DEMO_USER_ID, {
            "starting_weight": profile.starting_weight,
            "target_weight": profile.target_weight,
            "height": profile.height,
            "age": profile.age,
            "display_name": profile.display_name,
        })
    store.sign_in_as(identity)
    st.session_state.store = store
    st.session_state.user = identity


def _sign_out() -> None:
    store = st.session_state.get("store")
    if store is not None:
        # Never raises: a failed remote sign-out is only logged.
        store.sign_out()
    st.session_state.clear()


# -------------------------------
# Authentication
# -------------------------------

def render_auth_ui(settings, store: Store) -> Optional[Identity]:
    """Render login/sign-up/guest/demo options, or the signed-in header."""
    if "user" not in st.session_state:
        st.session_state.user = store.get_session()

    if st.session_state.user is None:
        st.markdown("### Welcome to FitBuddy")
        st.markdown("**Track your weight, set a goal, and compare progress with friends.**")

        demo_col1, demo_col2, demo_col3 = st.columns([1, 2, 1])
        with demo_col2:
            if st.button("Try the demo", key="demo_btn", use_container_width=True, type="primary"):
                _start_local_session(settings, Identity(DEMO_USER_ID, "demo@example.com"), demo=True)
                st.rerun()

        st.markdown("---")
        tab1, tab2, tab3 = st.tabs(["Email Login", "Sign Up", "Continue as Guest"])

        with tab1:
            login_email = st.text_input("Email", key="login_email")
            login_password = st.text_input("Password", type="password", key="login_password")
            if st.button("Login", key="login_btn"):
                try:
                    st.session_state.user = store.sign_in(login_email, login_password)
                    if isinstance(store, SupabaseStore):
                        st.session_state.session = store.auth_session()
                    st.rerun()
                except FitBuddyError as e:
                    st.error(e.message)

        with tab2:
            signup_email = st.text_input("Email", key="signup_email")
            signup_password = st.text_input("Password", type="password", key="signup_password")
            signup_confirm = st.text_input("Confirm Password", type="password", key="signup_confirm")
            if st.button("Sign Up", key="signup_btn"):
                if signup_password != signup_confirm:
                    st.error("Passwords don't match.")
                else:
                    try:
                        st.session_state.user = store.sign_up(signup_email, signup_password)
                        st.rerun()
                    except FitBuddyError as e:
                        st.error(e.message)

        with tab3:
            st.info("Guest mode stores data in a local file on this machine.")
            if st.button("Continue as Guest", key="guest_btn"):
                _start_local_session(settings, Identity("guest", "guest@example.com"))
                st.rerun()
        return None

    user: Identity = st.session_state.user
    col1, col2 = st.columns([3, 1])
    with col1:
        st.markdown(f"### Welcome, {user.email or 'friend'}")
    with col2:
        if st.button("Sign Out", use_container_width=True):
            _sign_out()
            st.rerun()
    return user


# -------------------------------
# Profile
# -------------------------------

def _current_profile(store: Store, identity: Identity):
    """Remote profile merged over the copy cached in session state."""
    cached = st.session_state.get("cached_profile")
    remote = None
    try:
        remote = store.fetch_profile(identity.id)
    except PersistenceError as e:
        st.warning(e.message)
    profile = merge_profile(remote, cached, {"activity_level": ActivityLevel.MODERATE})
    st.session_state.cached_profile = profile
    return profile


def render_profile_form(store: Store, identity: Identity, profile=None, submit_label: str = "Save Profile") -> bool:
    levels = list(ActivityLevel)
    current_level = profile.activity_level if profile else ActivityLevel.MODERATE
    with st.form("profile_form"):
        starting = st.text_input("Starting Weight (lbs)", value=_fmt(profile and profile.starting_weight), placeholder="150.0")
        target = st.text_input("Target Weight (lbs)", value=_fmt(profile and profile.target_weight), placeholder="140.0")
        height = st.text_input("Height (in)", value=_fmt(profile and profile.height), placeholder="68")
        age = st.text_input("Age", value=_fmt(profile and profile.age), placeholder="30")
        name = st.text_input("Display name", value=(profile and profile.display_name) or "")
        level = st.selectbox(
            "Activity Level",
            levels,
            index=levels.index(ActivityLevel(current_level)),
            format_func=lambda lv: ACTIVITY_LABELS[lv],
        )
        submitted = st.form_submit_button(submit_label)

    if not submitted:
        return False
    if not all([starting, target, height, age]):
        st.error("Please enter valid numbers for all fields")
        return False
    try:
        saved = save_profile(store, identity.id, {
            "starting_weight": starting,
            "target_weight": target,
            "height": height,
            "age": age,
            "activity_level": level,
            "display_name": name,
        })
    except FitBuddyError as e:
        st.error(e.message)
        return False
    st.session_state.cached_profile = saved
    return True


def _fmt(value) -> str:
    return "" if value is None or value is False else str(value)


def render_profile_setup(store: Store, identity: Identity) -> None:
    st.header("Set Up Your Profile")
    st.caption("Tell us about yourself to personalize your weight tracking experience")
    if render_profile_form(store, identity, submit_label="Complete Setup"):
        st.rerun()


# -------------------------------
# Pages
# -------------------------------

def render_dashboard(store: Store, identity: Identity, settings) -> None:
    snap = load_snapshot(store, identity)
    for msg in snap.errors:
        st.error(msg)
    profile = snap.profile or st.session_state.get("cached_profile")

    window = st.radio(
        "Time period",
        WINDOWS,
        index=WINDOWS.index(DEFAULT_WINDOW),
        format_func=lambda w: WINDOW_LABELS[w],
        horizontal=True,
        key="window",
    )
    today = today_local(settings.tz)
    summary = summarize(snap.samples, profile, window, now=today)

    c1, c2, c3 = st.columns(3)
    c1.metric("Current Weight", format_weight(summary.current))
    period = "overall" if window == "all" else f"this {WINDOW_LABELS[window].lower()}"
    c2.metric("Last Change", format_change(summary.last_change),
              delta=f"{format_change(summary.window_change)} {period}", delta_color="inverse")
    c3.metric("Progress to Goal", format_progress(summary.progress))
    if summary.progress is not None:
        st.progress(min(max(summary.progress, 0.0), 100.0) / 100.0)

    st.session_state.setdefault("submitting", False)
    with st.expander("Add today's weight"):
        with st.form("add_weight", clear_on_submit=True):
            weight = st.text_input("Weight (lbs)", placeholder="185.5")
            note = st.text_area("Notes (optional)", placeholder="How are you feeling today?")
            submitted = st.form_submit_button("Add Entry", disabled=st.session_state.submitting)
        if submitted and weight and not st.session_state.submitting:
            st.session_state.submitting = True
            try:
                record_weight(store, identity, snap.samples, weight, note, today)
                st.rerun()
            except FitBuddyError as e:
                st.error(e.message)
            finally:
                st.session_state.submitting = False

    st.plotly_chart(make_weight_chart(snap.samples, window, now=today), use_container_width=True)

    st.subheader("Weight History")
    rows = entry_changes(snap.samples)
    if not rows:
        st.info("No weight entries yet. Add your first entry to get started!")
    for sample, change in rows:
        left, right = st.columns([3, 1])
        with left:
            st.markdown(f"**{sample.date:%B %d, %Y}**  \n{sample.weight:.1f} lbs")
            if sample.note:
                st.caption(sample.note)
        with right:
            if change != 0:
                st.markdown(
                    f"<span style='color:{change_color(change)}'>{format_change(change)}</span>",
                    unsafe_allow_html=True,
                )


def _add_friend_flow(store: Store) -> AddFriendFlow:
    flow = st.session_state.get("add_friend_flow")
    if flow is None or flow.linker.store is not store:
        flow = AddFriendFlow(FriendLinker(store))
        st.session_state.add_friend_flow = flow
    return flow


def render_shared_dashboard(store: Store, identity: Identity, settings) -> None:
    st.header("Shared Dashboard")
    st.caption("Compare progress with friends")

    window = st.radio(
        "Time period",
        WINDOWS,
        index=WINDOWS.index(DEFAULT_WINDOW),
        format_func=lambda w: WINDOW_LABELS[w],
        horizontal=True,
        key="shared_window",
    )
    with st.spinner("Loading..."):
        comparison = load_comparison(store, identity, window, now=today_local(settings.tz))
    for msg in comparison.errors:
        st.error(msg)

    st.plotly_chart(make_comparison_chart(comparison.series, window), use_container_width=True)

    friends = comparison.friends
    if friends:
        cols = st.columns(min(len(friends), 3))
        for i, f in enumerate(friends):
            with cols[i % len(cols)]:
                st.markdown(
                    f"<div style='border-left:4px solid {f.color}; background:{f.fill}; padding:8px 12px; border-radius:4px;'>"
                    f"<b>{f.label}</b><br>{format_weight(f.current)}<br>"
                    f"<span style='color:{change_color(f.change_30d)}'>30d: {format_change(f.change_30d)}</span></div>",
                    unsafe_allow_html=True,
                )

    flow = _add_friend_flow(store)
    flow.tick()
    if not flow.is_open:
        if st.button("Add a Friend", key="open_add_friend"):
            flow.open()
            flow.enter("")
            st.rerun()
        return

    st.markdown("#### Add a Friend")
    code = st.text_input("Friend Code", value=flow.code, placeholder="Enter friend code (e.g., ABC123)", max_chars=12)
    if code.upper() != flow.code:
        flow.enter(code)
    c1, c2 = st.columns(2)
    with c1:
        label = "Adding..." if flow.submitting else "Add Friend"
        if st.button(label, disabled=flow.submitting or not flow.code.strip()):
            if flow.submit(identity.id):
                st.rerun()
    with c2:
        if st.button("Cancel"):
            flow.close()
            st.rerun()
    if flow.message:
        if flow.state == AddFriendState.SUCCESS:
            st.success(flow.message)
            time.sleep(SUCCESS_CLOSE_DELAY)
            flow.tick()
            st.rerun()
        else:
            st.error(flow.message)


def render_settings(store: Store, identity: Identity, profile) -> None:
    st.header("Settings")
    st.subheader("Friend Code")
    if profile is not None and profile.friend_code:
        st.code(profile.friend_code)
        st.caption("Share this code so friends can add you to their comparison view.")
    else:
        st.info("Your friend code will appear here after you complete your profile.")

    st.subheader("Profile")
    if render_profile_form(store, identity, profile):
        st.success("Profile saved.")


# Main UI
def main():
    st.set_page_config(page_title="FitBuddy", layout="wide")
    configure_logging()
    settings = load_settings()
    st.title("FitBuddy")
    st.caption("Weight Tracking Dashboard")

    if not settings.supabase_available:
        st.warning("Supabase not configured. Running in guest mode only.")

    store = _get_store(settings)
    if isinstance(store, SupabaseStore) and st.session_state.get("session"):
        session = st.session_state.session
        try:
            store.set_session(session.access_token, session.refresh_token)
        except PersistenceError:
            st.session_state.session = None

    identity = render_auth_ui(settings, store)
    if identity is None:
        return

    profile = _current_profile(store, identity)
    if needs_onboarding(profile):
        render_profile_setup(store, identity)
        return

    page = st.sidebar.radio("Navigate", ["Dashboard", "Shared", "Settings"], key="page")
    if page == "Dashboard":
        render_dashboard(store, identity, settings)
    elif page == "Shared":
        render_shared_dashboard(store, identity, settings)
    else:
        render_settings(store, identity, profile)


# -------------------------------
# Lightweight tests (doctests)
# -------------------------------

def _run_doctests_if_requested():
    if os.environ.get("RUN_DOCTESTS", "0") == "1":
        import doctest as _doctest

        import aggregation
        import charts
        import ingest
        import models
        import profiles

        for module in (aggregation, charts, ingest, models, profiles):
            _doctest.testmod(module, verbose=True)


_run_doctests_if_requested()

# Call the Streamlit app entrypoint when the script is executed by Streamlit
main()
