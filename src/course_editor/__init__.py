"""
Moodle Course Editor Client

Keeps a local mirror of a Moodle course structure and applies editing
actions (moves, visibility, refreshes, bulk selection) through the
course editor web services.
"""

__version__ = "0.1.0"
