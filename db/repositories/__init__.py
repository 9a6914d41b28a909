"""Repository layer for the call pipeline.

Provides upsert, dedup, and query methods for the persisted entities:
- calls: get_by_external_id, merge_upsert, count_since, get_since, summary
- analysis: upsert, get_by_call
- playbooks: get_active, get_max_version, create_next, seed_baseline
- improvement: get_watermark, record_cycle, get_recent_logs,
               claim_trigger, release_trigger
"""
