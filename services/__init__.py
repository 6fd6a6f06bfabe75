"""
Services Package

Higher-level components built on the feed clients:
- stats_engine: Latency summaries, speedup and distribution buckets
- benchmark: Cached vs. uncached latency benchmark
- api_status: Health, provenance and circuit-breaker probes
- poller: Fixed-interval polling loops
- event_bus: In-process pub/sub for stream events
"""
