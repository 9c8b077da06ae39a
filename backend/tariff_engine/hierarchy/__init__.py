"""Classification hierarchy browsing."""
