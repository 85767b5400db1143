"""Probing, complexity analysis, classification and crop detection."""
