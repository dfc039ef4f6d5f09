"""
Mosaicify — Gallery Edition

Run with:
    streamlit run streamlit_app.py
"""

from __future__ import annotations

import io
import time

import streamlit as st
from PIL import Image, ImageDraw

from mosaicify.config import MosaicConfig
from mosaicify.coordinator import build_assignment, build_pool
from mosaicify.errors import MosaicError
from mosaicify.image_io import compose_mosaic, load_image, load_sources

# -- Page config -------------------------------------------------------
st.set_page_config(
    page_title="Mosaicify",
    page_icon=None,
    layout="wide",
    initial_sidebar_state="collapsed",
)

_DEFAULTS = MosaicConfig()
_TARGET_MAX_SIDE = 1200

# -- CSS ---------------------------------------------------------------
st.markdown("""
<style>
    @import url('https://fonts.googleapis.com/css2?family=Cormorant+Garamond:ital,wght@0,300;0,400;1,300&family=Inter:wght@200;300;400&display=swap');

    .stApp {
        background-color: #faf9f6;
        color: #2a2a2a;
        font-family: 'Inter', 'Helvetica Neue', sans-serif;
    }
    .block-container {
        max-width: 1000px;
        padding-top: 3.5rem;
        padding-bottom: 4rem;
    }
    .gallery-title {
        font-family: 'Cormorant Garamond', 'Georgia', serif;
        font-size: 2.8rem;
        font-weight: 300;
        letter-spacing: 0.06em;
        text-align: center;
        color: #1a1a1a;
        border-bottom: 1px solid #1a1a1a;
        padding-bottom: 0.6rem;
        margin-bottom: 0.5rem;
    }
    .gallery-subtitle {
        font-family: 'Inter', sans-serif;
        font-size: 0.75rem;
        font-weight: 300;
        color: #1a1a1a;
        letter-spacing: 0.04em;
        line-height: 1.8;
        margin-bottom: 3.5rem;
    }
    .slider-desc {
        font-family: 'Cormorant Garamond', 'Georgia', serif;
        font-size: 0.95rem;
        font-style: italic;
        color: #6a6a64;
        line-height: 1.6;
        margin-top: -0.5rem;
        margin-bottom: 1rem;
    }
    .catalogue-detail {
        font-family: 'Inter', sans-serif;
        font-size: 0.75rem;
        letter-spacing: 0.08em;
        text-transform: uppercase;
        text-align: center;
        margin-bottom: 2rem;
    }
    .processing-text {
        font-family: 'Cormorant Garamond', serif;
        font-size: 1rem;
        font-style: italic;
        color: #a0a09a;
        padding: 1.5rem 0;
    }
    hr { border: none; border-top: 1px solid #e0ded8; margin: 2.5rem 0; }

    #MainMenu {visibility: hidden;}
    footer {visibility: hidden;}
    header {visibility: hidden;}
</style>
""", unsafe_allow_html=True)


# -- Helpers -----------------------------------------------------------

def _add_passepartout(img: Image.Image, border: int = 20) -> Image.Image:
    w, h = img.size
    bg = (250, 249, 246)
    canvas = Image.new("RGB", (w + border * 2, h + border * 2), bg)
    canvas.paste(img, (border, border))
    draw = ImageDraw.Draw(canvas)
    draw.rectangle(
        [border - 1, border - 1, border + w, border + h],
        outline=(224, 222, 216), width=1,
    )
    return canvas


# -- Title -------------------------------------------------------------
st.markdown('<div class="gallery-title">Mosaicify</div>', unsafe_allow_html=True)
st.markdown(
    '<div class="gallery-subtitle">'
    "Upload a target image and a collection of source images. The target is "
    "cut into a grid and every cell is replaced by the source whose average "
    "colour is closest. With duplicate avoidance each source appears at most "
    "once, and the Hungarian method can find the placement with the smallest "
    "total colour distance."
    "</div>",
    unsafe_allow_html=True,
)

# -- Controls ----------------------------------------------------------
ctrl1, ctrl2 = st.columns(2)
with ctrl1:
    rows = st.slider("Rows", 1, 100, _DEFAULTS.rows)
    cols = st.slider("Columns", 1, 100, _DEFAULTS.cols)
    st.markdown(
        '<div class="slider-desc">'
        "More cells give a more faithful mosaic but need more source images "
        "when duplicates are avoided."
        "</div>",
        unsafe_allow_html=True,
    )
with ctrl2:
    color_space = st.selectbox("Colour space", ["lab", "rgb", "gray"])
    avoid_duplicates = st.checkbox("Avoid duplicates", _DEFAULTS.avoid_duplicates)
    solver = st.selectbox(
        "Solver", ["greedy", "hungarian"], disabled=not avoid_duplicates,
    )

st.markdown("---")

# -- Upload ------------------------------------------------------------
target_file = st.file_uploader(
    "Select target", type=["jpg", "jpeg", "png", "webp", "bmp", "jfif"],
)
source_files = st.file_uploader(
    "Select source images", type=["jpg", "jpeg", "png", "webp", "bmp", "jfif"],
    accept_multiple_files=True,
)

if target_file is not None and source_files:
    try:
        target = load_image(target_file, _TARGET_MAX_SIDE)
    except OSError as exc:
        st.error(f"Cannot read {target_file.name}: {exc}")
        st.stop()

    if st.button("COMPOSE", type="primary", use_container_width=True):
        cfg = MosaicConfig(
            rows=rows, cols=cols, color_space=color_space,
            avoid_duplicates=avoid_duplicates,
            solver=solver if avoid_duplicates else "greedy",
        )
        progress = st.empty()
        progress.markdown(
            '<div class="processing-text">Composing ...</div>',
            unsafe_allow_html=True,
        )

        t0 = time.perf_counter()
        try:
            sources, labels = load_sources(source_files, cfg.source_max_side)
            skipped = len(source_files) - len(sources)
            if skipped:
                st.warning(f"Skipped {skipped} unreadable source image(s)")
            pool = build_pool(sources, cfg, labels)
            cells, result = build_assignment(target, pool, cfg)
        except MosaicError as exc:
            progress.empty()
            st.error(str(exc))
            st.stop()
        elapsed = time.perf_counter() - t0
        progress.empty()

        if result.failures:
            st.warning(
                f"{len(result.failures)} cell(s) could not be assigned: "
                + ", ".join(str(f.coords) for f in result.failures)
            )

        mosaic = Image.fromarray(
            compose_mosaic(target.shape, cells, result.assignment, sources),
        )
        st.image(_add_passepartout(mosaic, border=28), use_container_width=True)
        st.markdown(
            f'<div class="catalogue-detail">'
            f"{rows} &times; {cols}, {len(sources)} sources, {color_space}"
            f"</div>",
            unsafe_allow_html=True,
        )

        buf = io.BytesIO()
        mosaic.save(buf, format="PNG")
        _, dl_col, _ = st.columns([1, 2, 1])
        with dl_col:
            st.download_button(
                "SAVE ART",
                data=buf.getvalue(),
                file_name="mosaic.png",
                mime="image/png",
                use_container_width=True,
            )

        m1, m2, m3 = st.columns(3)
        m1.metric("Cells", f"{rows * cols:,}")
        m2.metric("Distinct sources", f"{len(set(result.assignment.values())):,}")
        m3.metric("Time", f"{elapsed:.1f} s")
    else:
        st.image(target, use_container_width=True)
else:
    st.markdown(
        '<p style="font-family: Cormorant Garamond, Georgia, serif; '
        "color: #bbb; font-size: 1rem; font-weight: 300; "
        'font-style: italic; margin-top: 2rem;">'
        "Select a target and some source images to begin.</p>",
        unsafe_allow_html=True,
    )
