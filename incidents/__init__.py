"""Core (UI-agnostic) incident dashboard logic.

This package contains:
- data loading (CSV -> pandas) and CSV export
- filter state, merge rules and the row evaluator
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
- the session store used by the Streamlit app
"""
