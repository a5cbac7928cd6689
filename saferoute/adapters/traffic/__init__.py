from .directions import DirectionsTrafficFetcher, congestion_level

__all__ = ["DirectionsTrafficFetcher", "congestion_level"]
