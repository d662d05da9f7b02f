"""
Chart and table helpers for the TravelBio pages.

Builds plotly figures and pandas frames from statistics and rankings,
plus small formatting helpers for ratings and ranks. Nothing here talks
to the store or to Streamlit, so every helper works on plain values.
"""

from typing import Callable, Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go

from travelbio.models import (
    CATEGORIES,
    CATEGORY_TITLES,
    RATING_MAX,
    CountryStatistics,
    RankingEntry,
)

# Color palette for compared countries
PALETTE = ["#1f77b4", "#ff7f0e", "#2ca02c", "#d62728"]


# ============================================================================
# Formatting
# ============================================================================

def get_rating_color(rating: float) -> str:
    """
    Return a color for a 1-5 rating.

    Args:
        rating: Average rating

    Returns:
        CSS color string
    """
    if rating >= 4.5:
        return "#4CAF50"  # Green - Excellent
    elif rating >= 3.5:
        return "#FFC107"  # Amber - Good
    elif rating >= 2.5:
        return "#FF9800"  # Orange - Average
    else:
        return "#F44336"  # Red - Poor


def format_rating(average: float, sample_size: Optional[int] = None) -> str:
    """Format an average for display; "No ratings" when there is no data."""
    if sample_size == 0 or (sample_size is None and average == 0):
        return "No ratings"
    return f"{average:.1f}"


def render_stars(rating: float) -> str:
    """Star string for a rating, rounded to the nearest whole star."""
    filled = max(0, min(RATING_MAX, int(rating + 0.5)))
    return "★" * filled + "☆" * (RATING_MAX - filled)


def get_rank_medal(rank: int) -> str:
    """
    Get rank display string.

    Args:
        rank: Numeric rank

    Returns:
        Medal for the podium, otherwise the rank as text
    """
    medals = {1: "🥇", 2: "🥈", 3: "🥉"}
    return medals.get(rank, f"#{rank}")


def render_metric_card(label: str, value: str, caption: Optional[str] = None) -> str:
    """
    Render a styled metric card.

    Args:
        label: Metric label
        value: Metric value (formatted)
        caption: Optional line under the value

    Returns:
        HTML string for metric card
    """
    caption_html = f'<div class="metric-caption">{caption}</div>' if caption else ""
    return f'''
        <div class="metric-card">
            <div class="metric-label">{label}</div>
            <div class="metric-value">{value}</div>
            {caption_html}
        </div>
    '''


# ============================================================================
# Tables
# ============================================================================

def rankings_to_dataframe(
    entries: List[RankingEntry],
    label_for: Callable[[object], str],
    value_label: str = "Value"
) -> pd.DataFrame:
    """
    Convert ranking entries to a display table.

    Args:
        entries: Ranked entries
        label_for: Maps a ranked entity to its display name
        value_label: Column header for the metric

    Returns:
        DataFrame with Rank, Name and metric columns
    """
    return pd.DataFrame(
        [
            {
                "Rank": entry.rank,
                "Name": label_for(entry.entity),
                value_label: entry.metric_value,
            }
            for entry in entries
        ],
        columns=["Rank", "Name", value_label],
    )


def statistics_to_dataframe(
    statistics: List[CountryStatistics],
    names: Dict[object, str]
) -> pd.DataFrame:
    """
    One row per country with counts and every category average.

    Averages without data are left empty rather than shown as 0.
    """
    rows = []
    for stats in statistics:
        row = {
            "Country": names.get(stats.country_id, str(stats.country_id)),
            "Visitors": stats.visitor_count,
            "Trips": stats.trip_count,
            "Overall": stats.overall.average if stats.overall.has_data else None,
        }
        for category in CATEGORIES:
            entry = stats.category(category)
            row[CATEGORY_TITLES[category]] = entry.average if entry.has_data else None
        rows.append(row)

    columns = ["Country", "Visitors", "Trips", "Overall"] + [
        CATEGORY_TITLES[c] for c in CATEGORIES
    ]
    return pd.DataFrame(rows, columns=columns)


# ============================================================================
# Figures
# ============================================================================

def create_category_radar_chart(
    statistics: List[CountryStatistics],
    names: Dict[object, str]
) -> Optional[go.Figure]:
    """
    Radar chart of category averages for one or more countries.

    Args:
        statistics: Countries to plot
        names: Country id to display name

    Returns:
        Plotly Figure, or None when there is nothing to plot
    """
    if not statistics:
        return None

    categories = [CATEGORY_TITLES[c] for c in CATEGORIES]
    fig = go.Figure()

    for i, stats in enumerate(statistics):
        values = [stats.average(c) for c in CATEGORIES]

        # Close the radar chart
        values.append(values[0])
        categories_closed = categories + [categories[0]]

        fig.add_trace(go.Scatterpolar(
            r=values,
            theta=categories_closed,
            fill='toself',
            name=names.get(stats.country_id, str(stats.country_id)),
            line=dict(color=PALETTE[i % len(PALETTE)]),
            opacity=0.4
        ))

    fig.update_layout(
        polar=dict(
            radialaxis=dict(visible=True, range=[0, RATING_MAX], tickfont=dict(size=10)),
            angularaxis=dict(tickfont=dict(size=11)),
        ),
        showlegend=len(statistics) > 1,
        margin=dict(t=40, b=40, l=60, r=60),
        height=400,
    )

    return fig


def create_ranking_bar_chart(
    entries: List[RankingEntry],
    label_for: Callable[[object], str],
    title: str,
    value_label: str = "Average rating",
    color_by_rating: bool = True
) -> Optional[go.Figure]:
    """
    Horizontal bar chart of a ranking, best at the top.

    Args:
        entries: Ranked entries
        label_for: Maps a ranked entity to its display name
        title: Chart title
        value_label: Axis label for the metric
        color_by_rating: Color bars by rating band; counts use one color

    Returns:
        Plotly Figure, or None for an empty ranking
    """
    if not entries:
        return None

    labels = [label_for(e.entity) for e in entries]
    values = [e.metric_value for e in entries]

    fig = go.Figure(data=[
        go.Bar(
            x=values,
            y=labels,
            orientation='h',
            marker_color=[get_rating_color(v) for v in values] if color_by_rating else PALETTE[0],
            text=[f'{v:.1f}' if isinstance(v, float) else str(v) for v in values],
            textposition='outside'
        )
    ])

    fig.update_layout(
        title=title,
        xaxis_title=value_label,
        yaxis=dict(autorange="reversed"),
        height=max(250, 40 * len(entries) + 100),
        margin=dict(t=50, b=40, l=120, r=40),
    )

    return fig
