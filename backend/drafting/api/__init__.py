"""HTTP surface for the drafting pipeline."""
