"""Tests for pokersync."""
