"""Educator revenue and engagement-points settlement."""
