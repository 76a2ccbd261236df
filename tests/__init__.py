"""Tests for the Tuya Cloud integration."""
