"""hostwatch command line application."""
