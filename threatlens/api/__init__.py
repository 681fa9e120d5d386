"""
HTTP surface: routes, dependencies and the admission guard.
"""
