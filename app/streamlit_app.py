import os
import sys
from pathlib import Path

import pandas as pd
import requests
import streamlit as st

sys.path.append(str(Path(__file__).resolve().parents[1]))

from schoolmap.config import TIER_COLORS  # noqa: E402
from schoolmap.data.records import dump_records, load_records, records_from_frame  # noqa: E402
from schoolmap.map.deck import MARKER_LAYER_ID, DeckMapCapability  # noqa: E402
from schoolmap.map.session import MapSessionController, SessionState  # noqa: E402
from schoolmap.utils.geo import is_unset  # noqa: E402


@st.cache_data(show_spinner=False)
def _read_csv(uploaded_file):
    return pd.read_csv(uploaded_file)


API = os.getenv("SCHOOLMAP_API", "http://localhost:8000").rstrip("/")
LOCATE_TIMEOUT = int(os.getenv("SCHOOLMAP_LOCATE_TIMEOUT", "30"))
MAP_CONTAINER = "school-map"

st.set_page_config(page_title="海淀中学梯队地图", layout="wide")

if "located" not in st.session_state:
    st.session_state["located"] = {}
if "controller" not in st.session_state:
    st.session_state["controller"] = MapSessionController(DeckMapCapability())

st.title("北京中学梯队及位置信息")
st.caption("每个标记的颜色代表梯队，数字为 2025 年中签率（%）。点击标记查看学校详情。")

with st.sidebar:
    st.header("数据")
    uploader = st.file_uploader(
        "学校 CSV (name, tier, lng, lat, acceptance_rate_2025, ...)",
        type=["csv"],
    )
    if uploader:
        try:
            records = records_from_frame(_read_csv(uploader))
        except Exception as exc:
            st.error(f"Could not read CSV: {exc}")
            st.stop()
    else:
        records = load_records()
        st.caption("Using bundled schools (schoolmap/data/schools.json).")

    missing = [r for r in records if is_unset(r.location)]
    if missing:
        st.warning(f"{len(missing)} school(s) without coordinates will sit at the map centre.")
        if st.button("Locate via place search"):
            for record in missing:
                try:
                    resp = requests.post(
                        f"{API}/locate",
                        json={"name": record.name, "address": record.address},
                        timeout=LOCATE_TIMEOUT,
                    )
                    resp.raise_for_status()
                    body = resp.json()
                except requests.exceptions.RequestException as exc:
                    st.error(f"Place search unavailable: {exc}")
                    break
                if body.get("found"):
                    st.session_state["located"][record.name] = tuple(body["coordinate"])
                else:
                    st.info(f"No place found for {record.name}.")

located = st.session_state["located"]
records = [
    r.model_copy(update={"location": located[r.name]}) if is_unset(r.location) and r.name in located else r
    for r in records
]

if not records:
    st.info("No schools to show.")
    st.stop()

controller: MapSessionController = st.session_state["controller"]
if controller.state in (SessionState.UNINITIALIZED, SessionState.DESTROYED):
    controller.mount(MAP_CONTAINER, records)
elif dump_records(controller.records) != dump_records(records):
    controller.update_records(records)

if controller.viewport is None:
    st.error("Map failed to initialise. Reload the page to retry.")
    st.stop()

col_map, col_detail = st.columns([3, 1])
with col_map:
    deck = controller.viewport.render()
    try:
        event = st.pydeck_chart(
            deck,
            on_select="rerun",
            selection_mode="single-object",
            key="school-deck",
        )
    except Exception as exc:
        st.warning(f"Map failed to render: {exc}.", icon="⚠️")
        event = None
    picked = []
    if event is not None:
        picked = (event.selection.get("objects") or {}).get(MARKER_LAYER_ID) or []
    if picked:
        index = int(picked[0]["index"])
        if index < len(controller.registry):
            controller.registry.select(index)
    elif event is not None:
        # a click on empty map clears the selection
        controller.registry.close_popups()

with col_detail:
    st.subheader("学校详情")
    pair = controller.registry.open_pair
    if pair is not None:
        st.markdown(pair.resolved.popup_content, unsafe_allow_html=True)
    else:
        st.caption("点击地图上的标记查看详情。")

st.markdown("#### 梯队颜色说明")
legend_cols = st.columns(len(TIER_COLORS))
for idx, (tier, color) in enumerate(TIER_COLORS.items()):
    legend_cols[idx].markdown(
        f"<div style='display:flex;align-items:center;font-size:0.85rem;'>"
        f"<span style='width:16px;height:16px;background-color:{color};"
        f"display:inline-block;margin-right:6px;border-radius:50%;'></span>{tier}</div>",
        unsafe_allow_html=True,
    )
st.caption(f"{len(controller.registry)} of {len(records)} schools plotted.")
