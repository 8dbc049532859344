"""
Location data for accident generation.
Camera-covered junctions in North Kolkata. Coordinates are WGS84 degrees.
"""

from .models import Location

LANDMARKS = [
    Location(lat=22.6208, lng=88.4035, address="Shyambazar Five Point Crossing, North Kolkata"),
    Location(lat=22.5958, lng=88.3697, address="College Street, North Kolkata"),
    Location(lat=22.6123, lng=88.3898, address="Belgachia, North Kolkata"),
    Location(lat=22.6345, lng=88.4102, address="Dum Dum Metro Station, North Kolkata"),
    Location(lat=22.5876, lng=88.3632, address="Bagbazar, North Kolkata"),
]
