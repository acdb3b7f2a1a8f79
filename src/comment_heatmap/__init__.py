"""Inline comment heatmap analytics for Confluence pages."""
