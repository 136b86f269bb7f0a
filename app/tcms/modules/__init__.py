"""
Training-center feature areas.

Each subpackage pairs a ``models`` module with a ``service`` module holding the
business rules, plus an ``admin`` blueprint mounted under /admin. Only careers
ships a public blueprint as well.
"""
