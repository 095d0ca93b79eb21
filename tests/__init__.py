"""Tests for ganttmaid."""
