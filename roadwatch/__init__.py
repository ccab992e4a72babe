"""
Roadwatch: citizen traffic-violation reporting backend.
"""

__version__ = "1.0.0"
