"""Command line tool for chart-operator."""
