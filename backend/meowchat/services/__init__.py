"""Domain services kept free of transport concerns.

Socket handlers and HTTP routes import from here; nothing in this package
imports Flask.
"""
