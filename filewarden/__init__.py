"""filewarden - folder watching agent that applies WHEN/DO rules to files"""

__version__ = "0.1.0"
