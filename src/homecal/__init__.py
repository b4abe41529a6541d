"""homecal - household calendar occurrence engine."""
