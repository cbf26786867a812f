from html import escape

import streamlit as st


def setup_style():
    st.markdown("""
    <style>
        @import url('https://fonts.googleapis.com/css2?family=Nunito:wght@400;600;800&display=swap');

        :root {
            --nest-bg: #fff8f3;
            --nest-card: #ffffff;
            --nest-border: rgba(214, 160, 130, 0.35);
            --nest-accent: #e07a5f;
            --nest-text: #3d2c29;
            --nest-soft: rgba(61, 44, 41, 0.65);
        }

        html, body, .stApp {
            font-family: 'Nunito', sans-serif;
            color: var(--nest-text);
            background: linear-gradient(180deg, var(--nest-bg) 0%, #fdeee4 100%);
        }

        .nest-card {
            background: var(--nest-card);
            border: 1px solid var(--nest-border);
            border-radius: 18px;
            padding: 1rem 1.25rem;
            margin-bottom: 0.75rem;
        }
        .nest-card h4 { margin: 0 0 0.35rem 0; }
        .nest-muted { color: var(--nest-soft); font-size: 0.9rem; }

        .nest-loading {
            display: flex; flex-direction: column; align-items: center;
            justify-content: center; min-height: 50vh; gap: 0.75rem;
        }
        .nest-orb {
            width: 56px; height: 56px; border-radius: 50%;
            background: radial-gradient(circle at 30% 30%, #f4a261, var(--nest-accent));
            animation: nest-pulse 1.2s ease-in-out infinite;
        }
        @keyframes nest-pulse {
            0%, 100% { transform: scale(0.9); opacity: 0.7; }
            50% { transform: scale(1.05); opacity: 1; }
        }

        .skeleton-line {
            background: linear-gradient(90deg, #f3e3d9 25%, #fbefe8 50%, #f3e3d9 75%);
            background-size: 200% 100%;
            animation: nest-shimmer 1.4s infinite;
            border-radius: 8px; height: 14px; margin: 8px 0;
        }
        @keyframes nest-shimmer {
            0% { background-position: 200% 0; }
            100% { background-position: -200% 0; }
        }
    </style>
    """, unsafe_allow_html=True)


def show_loading_overlay(message="Getting things ready"):
    st.markdown(
        f"""
        <div class="nest-loading">
          <div class="nest-orb"></div>
          <div class="nest-muted">{message}</div>
        </div>
        """,
        unsafe_allow_html=True
    )


def render_skeleton_cards(num_cols=3):
    """Placeholder cards shown while a tool request is running."""
    cols = st.columns(num_cols)
    for col in cols:
        with col:
            st.markdown('''
            <div class="nest-card">
                <div class="skeleton-line" style="width: 40%;"></div>
                <div class="skeleton-line"></div>
                <div class="skeleton-line" style="width: 70%;"></div>
            </div>
            ''', unsafe_allow_html=True)


def render_card(title, body, caption=None):
    # Model output is rendered as HTML
    caption_html = f'<div class="nest-muted">{escape(str(caption))}</div>' if caption else ""
    st.markdown(
        f'<div class="nest-card"><h4>{escape(str(title))}</h4>{caption_html}<div>{escape(str(body))}</div></div>',
        unsafe_allow_html=True,
    )


def update_chart_layout(fig):
    fig.update_layout(
        template="plotly_white",
        font=dict(family="Nunito, sans-serif", size=13, color="#3d2c29"),
        margin=dict(l=20, r=20, t=40, b=20),
        paper_bgcolor="rgba(0,0,0,0)",
        plot_bgcolor="rgba(255,255,255,0.6)",
        hovermode="x unified",
        xaxis=dict(showgrid=False, zeroline=False),
        yaxis=dict(showgrid=True, gridcolor="rgba(214,160,130,0.2)", zeroline=False),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    )
    return fig
