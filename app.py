"""
TravelBio - Streamlit Application

Country ratings and traveler leaderboards built from user travel records:
- Top charts: best rated, most visited and per-category rankings
- Traveler leaderboards
- Countries directory, country pages and traveler profiles
- Search and rating submission

Every page is computed on load from the configured data store.
"""

from typing import Optional

import streamlit as st
from pydantic import ValidationError

from travelbio.charts import (
    create_category_radar_chart,
    create_ranking_bar_chart,
    format_rating,
    get_rank_medal,
    render_metric_card,
    render_stars,
    rankings_to_dataframe,
    statistics_to_dataframe,
)
from travelbio.config import get_settings
from travelbio.errors import DataStoreError, NotFoundError
from travelbio.gateway import DataStoreGateway
from travelbio.health import HealthStatus, get_circuit_breaker_health, get_system_health
from travelbio.logging_config import configure_logging, get_logger, metrics
from travelbio.models import CATEGORIES, CATEGORY_TITLES, RATING_MAX, RATING_MIN, RelationKind
from travelbio.pages import (
    PageState,
    PageStatus,
    build_countries_directory,
    build_country_detail,
    build_gateway,
    build_leaderboards,
    build_profile,
    build_search,
    build_top_charts,
    load_page,
    submit_rating,
)
from travelbio.validators import RatingSubmission

# Logger
logger = get_logger("app")

# Page config
st.set_page_config(
    page_title="TravelBio",
    page_icon=None,
    layout="wide"
)

settings = get_settings()
configure_logging(settings)

PAGES = [
    "Top Charts",
    "Leaderboards",
    "Countries",
    "Country",
    "Traveler",
    "Search",
    "Rate a Country",
]


@st.cache_resource
def get_gateway() -> DataStoreGateway:
    """One gateway per server process; data is still fetched on every load."""
    return build_gateway(settings)


def render_state(state: PageState) -> bool:
    """Show the non-ready states. Returns True when the view can be rendered."""
    if state.status == PageStatus.READY:
        return True
    if state.status == PageStatus.NOT_FOUND:
        st.warning(state.message or "Not found")
    elif state.status == PageStatus.CANCELLED:
        st.info("Loading was cancelled.")
    else:
        st.error(state.message)
        st.caption(f"Request {state.request_id}")
    return False


def country_label(countries, country_id) -> str:
    country = countries.get(country_id)
    if country is None:
        return str(country_id)
    return f"{country.flag} {country.name}".strip()


# ============================================================================
# Pages
# ============================================================================

def render_top_charts(gateway: DataStoreGateway):
    st.header("Top Charts")
    state = load_page(
        lambda: build_top_charts(gateway, max_workers=settings.max_workers),
        page_name="top_charts",
    )
    if not render_state(state):
        return
    view = state.data

    def label(stats):
        return country_label(view.countries, stats.country_id)

    col1, col2 = st.columns(2)
    with col1:
        fig = create_ranking_bar_chart(view.top_overall, label, "Top Rated Countries")
        if fig is None:
            st.info("No rated countries yet.")
        else:
            st.plotly_chart(fig, use_container_width=True)
    with col2:
        fig = create_ranking_bar_chart(
            view.most_visited, label, "Most Visited Countries",
            value_label="Visitors", color_by_rating=False,
        )
        if fig is None:
            st.info("No visits recorded yet.")
        else:
            st.plotly_chart(fig, use_container_width=True)

    st.divider()

    tabs = st.tabs([ranking.title for ranking in view.categories])
    for tab, ranking in zip(tabs, view.categories):
        with tab:
            if not ranking.entries:
                st.info("No ratings in this category yet.")
                continue
            df = rankings_to_dataframe(ranking.entries, label, value_label="Average")
            df["Rank"] = df["Rank"].map(get_rank_medal)
            st.dataframe(df, use_container_width=True, hide_index=True)


def render_leaderboards(gateway: DataStoreGateway):
    st.header("Traveler Leaderboards")
    state = load_page(lambda: build_leaderboards(gateway), page_name="leaderboards")
    if not render_state(state):
        return
    view = state.data

    def label(stats):
        profile = view.profiles.get(stats.user_id)
        return profile.display_name if profile else str(stats.user_id)

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Most Countries")
        df = rankings_to_dataframe(view.top_travelers, label, value_label="Countries")
        df["Rank"] = df["Rank"].map(get_rank_medal)
        st.dataframe(df, use_container_width=True, hide_index=True)
    with col2:
        st.subheader("Most Reviews")
        df = rankings_to_dataframe(view.top_reviewers, label, value_label="Reviews")
        df["Rank"] = df["Rank"].map(get_rank_medal)
        st.dataframe(df, use_container_width=True, hide_index=True)


def render_countries(gateway: DataStoreGateway):
    st.header("Countries")
    query = st.text_input("Filter countries", placeholder="Name or code")
    state = load_page(
        lambda: build_countries_directory(gateway, query, max_workers=settings.max_workers),
        page_name="countries",
    )
    if not render_state(state):
        return
    view = state.data

    col1, col2, col3 = st.columns(3)
    with col1:
        st.markdown(render_metric_card("Countries", str(view.summary.total_countries)), unsafe_allow_html=True)
    with col2:
        st.markdown(
            render_metric_card("With visitors", str(view.summary.countries_with_visitors)),
            unsafe_allow_html=True,
        )
    with col3:
        st.markdown(render_metric_card("Trips", str(view.summary.total_trips)), unsafe_allow_html=True)

    if not view.entries:
        st.warning("No countries match your filter.")
        return

    names = {country.id: country.name for country, _ in view.entries}
    df = statistics_to_dataframe([stats for _, stats in view.entries], names)
    st.dataframe(df, use_container_width=True, hide_index=True)


def render_country(gateway: DataStoreGateway):
    st.header("Country")
    code = st.text_input("Country code", placeholder="e.g. JP").strip()
    if not code:
        st.info("Enter a country code to see its ratings.")
        return

    state = load_page(lambda: build_country_detail(gateway, code), page_name="country")
    if not render_state(state):
        return
    view = state.data
    stats = view.statistics

    st.subheader(f"{view.country.flag} {view.country.name}".strip())
    if view.country.description:
        st.write(view.country.description)

    col1, col2, col3 = st.columns(3)
    col1.metric("Overall", format_rating(stats.overall.average, stats.overall.sample_size))
    col2.metric("Visitors", stats.visitor_count)
    col3.metric("Trips", stats.trip_count)
    st.caption(f"Lived here: {stats.lived_count} | Visited: {stats.visited_count}")

    fig = create_category_radar_chart([stats], {view.country.id: view.country.name})
    if fig is not None:
        st.plotly_chart(fig, use_container_width=True)

    st.subheader("Reviews")
    if not view.reviews:
        st.info("No reviews yet.")
    for review in view.reviews:
        author = review.profile.display_name if review.profile else "Anonymous traveler"
        st.markdown(f"**{author}** {render_stars(review.record.overall_rating)}")
        if review.record.has_comment:
            st.write(review.record.comment)


def render_traveler(gateway: DataStoreGateway):
    st.header("Traveler")
    username = st.text_input("Username").strip()
    if not username:
        st.info("Enter a username to see a traveler's profile.")
        return

    state = load_page(lambda: build_profile(gateway, username), page_name="profile")
    if not render_state(state):
        return
    view = state.data
    stats = view.statistics

    st.subheader(view.profile.display_name)
    if view.profile.bio:
        st.write(view.profile.bio)

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Countries", stats.countries_visited_count)
    col2.metric("Places", stats.locations_count)
    col3.metric("Reviews", stats.reviews_written_count)
    col4.metric("Lived in", stats.lived_countries_count)

    st.subheader("By country")
    for group in view.breakdown:
        st.markdown(
            f"{country_label(view.countries, group.country_id)}: "
            f"{group.record_count} record(s), "
            f"average {format_rating(group.average_overall)}"
        )

    st.subheader("Timeline")
    for record in view.timeline:
        when = record.visit_date.isoformat() if record.visit_date else "Undated"
        st.markdown(
            f"{when} | {country_label(view.countries, record.country_id)} "
            f"({record.relation_kind.value})"
        )


def render_search(gateway: DataStoreGateway):
    st.header("Search")
    query = st.text_input("Search travelers and countries")
    state = load_page(
        lambda: build_search(gateway, query, max_workers=settings.max_workers),
        page_name="search",
    )
    if not render_state(state):
        return
    view = state.data
    if not query.strip():
        return

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Travelers")
        if not view.travelers:
            st.info("No travelers found.")
        for profile, stats in view.travelers:
            st.markdown(
                f"**{profile.display_name}** (@{profile.username}) "
                f"{stats.countries_visited_count} countries"
            )
    with col2:
        st.subheader("Countries")
        if not view.countries:
            st.info("No countries found.")
        for country, stats in view.countries:
            st.markdown(
                f"{country.flag} **{country.name}** "
                f"{stats.visitor_count} visitors, "
                f"rating {format_rating(stats.overall.average, stats.overall.sample_size)}"
            )


def render_rate_country(gateway: DataStoreGateway):
    st.header("Rate a Country")
    try:
        countries = gateway.fetch_all_countries()
    except DataStoreError as e:
        logger.error(f"Could not load countries for rating form: {e}")
        st.error("Could not load countries. Please try again.")
        return

    with st.form("rating_form"):
        username = st.text_input("Your username").strip()
        country = st.selectbox("Country", countries, format_func=lambda c: f"{c.flag} {c.name}".strip())
        relation = st.radio("I have", [RelationKind.VISITED, RelationKind.LIVED],
                            format_func=lambda k: k.value, horizontal=True)
        ratings = {}
        for category in CATEGORIES:
            ratings[category] = rating_input(CATEGORY_TITLES[category])
        overall = rating_input("Overall")
        comment = st.text_area("Comment")
        submitted = st.form_submit_button("Submit")

    if not submitted:
        return
    if not username or country is None:
        st.warning("Username and country are required.")
        return

    try:
        profile = gateway.fetch_profile_by_username(username)
        submission = RatingSubmission(
            country_id=country.id,
            relation_kind=relation,
            overall_rating=overall,
            comment=comment,
            **ratings,
        )
        submit_rating(gateway, profile.id, submission)
    except NotFoundError:
        st.warning(f"No traveler named {username}.")
        return
    except ValidationError as e:
        st.error(f"Invalid rating: {e.errors()[0]['msg']}")
        return
    except DataStoreError as e:
        logger.error(f"Rating submission failed: {e}")
        st.error("Could not save your rating. Please try again.")
        return

    st.success("Thanks! Your rating was saved.")


def rating_input(label: str) -> Optional[int]:
    """Star select with an explicit blank choice."""
    options = [None] + list(range(RATING_MIN, RATING_MAX + 1))
    return st.select_slider(
        label,
        options=options,
        format_func=lambda v: "Skip" if v is None else "★" * v,
    )


# ============================================================================
# Sidebar
# ============================================================================

def render_sidebar(gateway: DataStoreGateway) -> str:
    st.sidebar.markdown("## TravelBio")
    page = st.sidebar.radio("Go to", PAGES)

    st.sidebar.divider()
    st.sidebar.caption(f"Data store: {gateway.name}")

    with st.sidebar.expander("System Health"):
        health = get_system_health(gateway, settings)
        if health.status == HealthStatus.HEALTHY:
            st.success("All systems healthy")
        elif health.status == HealthStatus.DEGRADED:
            st.warning("Running in degraded mode")
        else:
            st.error("System issues detected")
        st.json(health.to_dict())
        breakers = get_circuit_breaker_health()
        if breakers:
            st.json(breakers)
        st.json(metrics.get_metrics())

    return page


def main():
    """Main application entry point."""
    try:
        gateway = get_gateway()
    except ValueError as e:
        st.error(str(e))
        return

    page = render_sidebar(gateway)
    renderers = {
        "Top Charts": render_top_charts,
        "Leaderboards": render_leaderboards,
        "Countries": render_countries,
        "Country": render_country,
        "Traveler": render_traveler,
        "Search": render_search,
        "Rate a Country": render_rate_country,
    }
    renderers[page](gateway)

    st.divider()
    st.caption("Ratings are computed from traveler records on every page load.")


if __name__ == "__main__":
    main()
