"""Open price oracle: bonded reports, escalating disputes and settlement."""
