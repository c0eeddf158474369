"""Coordinate transforms and text-to-geometry location."""
