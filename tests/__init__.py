"""
xray-sync test suite.

One module per component; shared fixtures live in conftest.py.
"""
