"""HTTP surface for the season engine."""
