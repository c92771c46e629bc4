"""HTTP surface: health, metrics and governance admin API."""
