"""
KPI engine test suite.
"""
