"""Core primitives shared by the wagering store and the shuffle engine.

Kept free of FastAPI concerns so it can be reused by API routes, scripts, and tests.
"""
