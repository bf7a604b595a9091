"""
LPB Meter Survey — field-survey and invoice dashboard core

Turns spreadsheet exports and database rows describing electricity
meter surveys into canonical MeterRecords, caches them per source, and
produces the summaries the dashboard panels render.

Pipeline:
    sources (PostgREST, edge SQL worker, sheet CSV)
        -> loaders.delimited / loaders.fields (parse, normalize)
        -> transforms (assemble records)
        -> cache + service (fallback, stale-serve, uploads)
        -> dashboard / kpis (filters, rollups)

To connect to Streamlit:
    Build a DatasetService once per session (see app.py), call
    fetch_dataset(), then pass the records through dashboard.apply_filter
    and kpis.aggregate_by.

To accept a new header spelling:
    Add it to config.FIELD_SYNONYMS under the canonical field, in the
    priority position it should take.
"""
