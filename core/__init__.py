"""Core (UI-agnostic) cashback dashboard logic.

This package contains:
- product catalog and row normalization (raw CSV text -> products, quantities, dates)
- the one-time cashback eligibility registry
- filter normalization
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
"""
