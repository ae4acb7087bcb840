"""Property entity-graph generation: use-code classification, layouts, owners and relationship files"""

__version__ = "0.1.0"
