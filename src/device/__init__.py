"""Device-side runtime: fallback cache, sync channel and notification dispatcher."""
