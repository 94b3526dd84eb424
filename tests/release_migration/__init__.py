"""Tests for the release migration resource."""
