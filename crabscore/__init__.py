"""
crabscore: static safety analysis and efficiency scoring for Rust projects.
"""

__version__ = "0.1.0"
