"""
Core modules for the Analytics Service.

This package contains the metadata codec and the time-window resolver.
"""
