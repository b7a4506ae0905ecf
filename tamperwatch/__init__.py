"""
tamperwatch: detect injected DOM content by comparing page renderings.
"""

__version__ = "0.1.0"
