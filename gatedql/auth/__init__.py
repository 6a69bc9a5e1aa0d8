"""Authorization: rule expressions, the per-request rule cache and the field gate."""
