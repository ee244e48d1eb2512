"""Route optimization service with batched routing jobs."""
