"""jetson_exporter
Prometheus exporter for NVIDIA Jetson telemetry reported by tegrastats.
"""

__version__ = "0.1.0"
