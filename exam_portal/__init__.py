"""Exam portal backend package."""
