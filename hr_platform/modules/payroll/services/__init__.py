"""Payroll period engine services."""
