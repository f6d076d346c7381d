"""Test suite for the stepwise package.

This package contains unit and integration tests validating
property resolution, scenario loading, step execution, run
policies, reporting and the command-line interface.
"""
