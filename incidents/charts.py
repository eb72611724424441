from __future__ import annotations

from typing import Any, Dict

import altair as alt

alt.data_transformers.disable_max_rows()

SEXUAL_COLOR = "#ff8ad8"
NON_SEXUAL_COLOR = "#8ab4ff"
SEVERITY_COLORS = ["#8ab4ff", "#9fd1ff", "#ffd88a", "#ffb38a", "#ff8ad8"]
PALETTE = ["#8ab4ff", "#ff8ad8", "#ffd88a", "#4ade80", "#c084fc", "#f97316", "#60a5fa", "#f472b6"]


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()
