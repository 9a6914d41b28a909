"""Call pipeline: normalize, reconcile, score, finalize and trigger improvement."""
