"""inkframe command line application."""
