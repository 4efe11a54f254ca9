"""Command line tool for the mcoa-addon library."""
