"""Query plan parsing and timeline layout."""
