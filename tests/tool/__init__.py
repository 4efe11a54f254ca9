"""Tests for the mcoa-addon command line tool."""
