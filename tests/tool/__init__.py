"""Tests for the chart-operator command line tool."""
