"""
cueplay - timestamped chunk playback scheduler.

Plays timestamped text chunks in order against a shared clock and drives an
external renderer that performs each chunk and reports when it has finished.
"""

__version__ = "0.1.0"
