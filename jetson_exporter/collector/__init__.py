"""jetson_exporter.collector
tegrastats line -> typed readings -> Prometheus gauges.

Modules
-------
sampler  : starts/stops tegrastats and tails its log file
parsers  : one regex extractor per tegrastats section
models   : pydantic readings and the per-line Snapshot
holder   : lock-guarded read -> parse for one scrape
projector: Snapshot -> gauge families, governor ordinals, custom collector
"""

__all__ = ["sampler", "parsers", "models", "holder", "projector"]
