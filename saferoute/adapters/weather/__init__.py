from .openweather import OpenWeatherFetcher

__all__ = ["OpenWeatherFetcher"]
