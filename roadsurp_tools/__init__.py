"""Road-surface anomaly detection tools."""
