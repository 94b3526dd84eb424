"""Tests for the chart controller."""
