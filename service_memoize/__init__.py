"""
Memoization service for declarative result caching.
"""
