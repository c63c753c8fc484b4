"""Geographic utilities."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Point:
    """Geographic point in decimal degrees (WGS84)."""

    lat: float
    lon: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")

    def to_coordinates(self) -> list[float]:
        """Return as [lon, lat], the GeoJSON axis order."""
        return [self.lon, self.lat]

    def to_geojson(self, buffer_size: float | None = None) -> dict:
        """Return a GeoJSON Point, optionally with a buffer radius in meters.

        The zonal statistics service takes the buffer as a sibling of
        ``coordinates`` rather than as a polygon.
        """
        geometry = {"type": "Point", "coordinates": self.to_coordinates()}
        if buffer_size is not None:
            geometry["buffer_size"] = buffer_size
        return geometry
