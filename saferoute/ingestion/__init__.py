from .hazard_ingestor import HazardIngestor, TRAFFIC_ALERT_SEVERITY

__all__ = ["HazardIngestor", "TRAFFIC_ALERT_SEVERITY"]
