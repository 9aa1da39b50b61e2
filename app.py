"""
Target-Size Image Compressor - Streamlit Application

Shrinks a batch of images so each one fits under a chosen file size,
trading encoder quality and resolution while keeping as much detail as
the budget allows.
"""

import logging
import time
from typing import List

import streamlit as st

# Import custom modules
from config import DEFAULT_CONFIG, get_default_config, merge_configs, build_search_config, to_target_bytes
from compression import TargetSizeCompressor, CompressionError
from compression.batch import BatchResult, compress_batch, create_download_package, summarize_batch
from utils.image_utils import format_bytes
from utils.visualization import plot_search_trace, create_outcome_cards


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(
    page_title="Target-Size Image Compressor",
    page_icon="🗜️",
    layout="wide",
    initial_sidebar_state="expanded"
)

# Custom CSS
st.markdown("""
<style>
    .main-header {
        background: linear-gradient(90deg, #e94560, #ff6b6b);
        -webkit-background-clip: text;
        -webkit-text-fill-color: transparent;
        font-size: 2.5rem;
        font-weight: 700;
        text-align: center;
        margin-bottom: 0.5rem;
    }

    .sub-header {
        color: #a8a8b3;
        text-align: center;
        font-size: 1.1rem;
        margin-bottom: 2rem;
    }

    .result-card {
        background: rgba(255, 255, 255, 0.03);
        border-radius: 12px;
        padding: 1rem;
        border: 1px solid rgba(255, 255, 255, 0.08);
        margin-bottom: 0.5rem;
    }

    .result-meta {
        color: #a8a8b3;
        font-size: 0.9rem;
    }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    if 'results' not in st.session_state:
        st.session_state.results = []
    if 'log_lines' not in st.session_state:
        st.session_state.log_lines = []


def append_log(message: str, placeholder=None):
    """Add a timestamped line to the on-page log."""
    timestamp = time.strftime("%H:%M:%S")
    st.session_state.log_lines.append(f"[{timestamp}] {message}")
    if placeholder is not None:
        placeholder.code("\n".join(st.session_state.log_lines), language=None)


def display_results(results: List[BatchResult]):
    """Show one card per image with its download button and search chart."""
    cards = create_outcome_cards(results)

    for result, card in zip(results, cards):
        col1, col2 = st.columns([4, 1])
        with col1:
            st.markdown(f"""
            <div class="result-card" style="border-left: 4px solid {card['color']};">
                <strong>{card['name']}</strong> · {card['status']}<br>
                <span class="result-meta">{card['detail']}</span>
            </div>
            """, unsafe_allow_html=True)
        with col2:
            if result.ok:
                st.download_button(
                    label="📥 Download",
                    data=result.outcome.blob,
                    file_name=result.download_name,
                    mime=result.mime_type,
                    key=f"download_{result.index}",
                    width='stretch'
                )

        if result.ok:
            with st.expander(f"Search details · {result.outcome.encode_calls} encodes"):
                fig = plot_search_trace(result.outcome.trace, result.outcome.target_bytes,
                                        title=result.name)
                st.plotly_chart(fig, width='stretch')


def main():
    """Main application entry point."""
    init_session_state()
    defaults = get_default_config()

    # Header
    st.markdown('<h1 class="main-header">Target-Size Image Compressor</h1>', unsafe_allow_html=True)
    st.markdown('<p class="sub-header">Fit every image under a file size limit</p>', unsafe_allow_html=True)

    # Sidebar configuration
    with st.sidebar:
        st.markdown("## ⚙️ Settings")

        target_value = st.number_input("Target size", min_value=0.0,
                                       value=float(defaults["target"]["value"]), step=10.0)
        unit = st.selectbox("Unit", ["KB", "MB"],
                            index=["KB", "MB"].index(defaults["target"]["unit"]))
        output_format = st.selectbox("Output format", DEFAULT_CONFIG["formats"], index=0,
                                     help="auto keeps the format of each source file")
        suffix = st.text_input("File name suffix", value=defaults["output"]["suffix"])

        st.markdown("---")

        with st.expander("🔧 Advanced Settings"):
            search_defaults = defaults["search"]
            quality_range = st.slider("Quality range", 5, 100, tuple(search_defaults["quality_range"]))
            scale_floor = st.slider("Smallest scale", 0.05, 1.0, search_defaults["scale_floor"], 0.01)
            scale_step = st.slider("Scale step", 0.5, 0.95, search_defaults["scale_step"], 0.01)
            early_exit = st.slider("Stop when within (fraction of target)", 0.80, 1.0,
                                   search_defaults["early_exit_fraction"], 0.01)

    # File uploader
    uploaded_files = st.file_uploader(
        "Upload images to compress",
        type=['jpg', 'jpeg', 'png', 'webp', 'bmp', 'tiff'],
        accept_multiple_files=True,
        help="Supported formats: JPG, PNG, WebP, BMP, TIFF"
    )

    if uploaded_files:
        total = sum(f.size for f in uploaded_files)
        st.caption(f"{len(uploaded_files)} file(s), {format_bytes(total)} total")

    if st.button("🚀 Compress", type="primary", width='stretch', disabled=not uploaded_files):
        target_bytes = to_target_bytes(target_value, unit) if target_value > 0 else 0
        if target_bytes <= 0:
            st.error("Enter a positive target size.")
            return

        try:
            search_config = build_search_config(merge_configs(defaults, {
                "search": {
                    "quality_range": quality_range,
                    "scale_floor": scale_floor,
                    "scale_step": scale_step,
                    "early_exit_fraction": early_exit,
                },
                "output": {"format": output_format},
            }))
        except ValueError as e:
            st.error(f"Invalid settings: {e}")
            return

        st.session_state.results = []
        st.session_state.log_lines = []
        progress_bar = st.progress(0)
        log_placeholder = st.empty()

        format_label = "automatic" if output_format == "auto" else output_format
        append_log(f"Processing {len(uploaded_files)} file(s) -> {target_bytes} bytes "
                   f"(format {format_label}).", log_placeholder)

        logger.info("Batch of %d file(s), target %d bytes", len(uploaded_files), target_bytes)
        items = ((f.name, f.getvalue()) for f in uploaded_files)
        compressor = TargetSizeCompressor(search_config)
        results = []

        try:
            for result in compress_batch(items, target_bytes, compressor, suffix):
                n = result.index + 1
                append_log(f"-> ({n}/{len(uploaded_files)}) {result.name}", log_placeholder)
                if result.ok:
                    outcome = result.outcome
                    marker = "OK" if outcome.success else "Partial fit"
                    append_log(f"   [{marker}] {result.download_name} -> {format_bytes(outcome.final_bytes)}, "
                               f"quality {outcome.quality}, scale {outcome.scale:.2f}", log_placeholder)
                else:
                    append_log(f"   [Error] {result.stage}: {result.error}", log_placeholder)
                results.append(result)
                progress_bar.progress(n / len(uploaded_files))
        except CompressionError as e:
            st.error(f"Compression failed: {e}")
            return

        st.session_state.results = results
        summary = summarize_batch(results)
        st.success(f"✨ Done: {summary['succeeded']} fit, {summary['partial']} partial, "
                   f"{summary['failed']} failed · {format_bytes(summary['total_bytes'])} total")

    elif st.session_state.log_lines:
        st.code("\n".join(st.session_state.log_lines), language=None)

    results = st.session_state.results
    if results:
        st.markdown("### 📦 Results")
        display_results(results)

        if any(r.ok for r in results):
            st.download_button(
                label="📦 Download All (ZIP)",
                data=create_download_package(results),
                file_name="compressed_images.zip",
                mime="application/zip",
                width='stretch'
            )


if __name__ == "__main__":
    main()
